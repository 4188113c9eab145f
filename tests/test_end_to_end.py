"""コミットから読み取りまでの一連の流れのテスト（respx によるフェイクストア）"""

import json

import httpx
import respx
from k1s0_event_store_client.http_client import HttpEventStoreClient
from k1s0_event_store_client.models import Event, EventStoreConfig

BASE_URL = "http://event-store:8080"
API_URL = f"{BASE_URL}/api/v1"


class FakeEventStore:
    """コミットされたイベントを保持し、subject 配下のイベントを返すフェイク。"""

    def __init__(self) -> None:
        self.events: list[dict] = []

    def commit(self, request: httpx.Request) -> httpx.Response:
        self.events.extend(json.loads(request.content)["events"])
        return httpx.Response(200)

    def stream(self, request: httpx.Request) -> httpx.Response:
        subject = json.loads(request.content)["subject"]
        prefix = subject.rstrip("/") + "/"
        matched = [e for e in self.events if e["subject"] == subject or e["subject"].startswith(prefix)]
        return httpx.Response(200, text="".join(json.dumps(e) + "\n" for e in matched))


def make_client() -> HttpEventStoreClient:
    return HttpEventStoreClient(
        EventStoreConfig(api_url=BASE_URL, api_version="v1", auth_token="test-token")
    )


@respx.mock
async def test_commit_then_stream_customers() -> None:
    """/customer 配下に 2 件コミットすると、両方が異なる id 付きで読み取れること。"""
    store = FakeEventStore()
    respx.post(f"{API_URL}/commit").mock(side_effect=store.commit)
    respx.post(f"{API_URL}/stream").mock(side_effect=store.stream)
    client = make_client()

    await client.commit_events(
        [
            Event(
                subject="/customer/1",
                type="io.example.customer-added",
                data={"firstName": "Bruce", "lastName": "Wayne"},
            ),
            Event(
                subject="/customer/2",
                type="io.example.customer-added",
                data={"firstName": "Alfred", "lastName": "Pennyworth"},
            ),
        ]
    )
    events = await client.stream_events("/customer")

    assert [e.subject for e in events] == ["/customer/1", "/customer/2"]
    assert all(e.id for e in events)
    assert events[0].id != events[1].id


@respx.mock
async def test_round_trip_keeps_data_and_type() -> None:
    """コミットした data と type がそのまま読み取れること。"""
    store = FakeEventStore()
    respx.post(f"{API_URL}/commit").mock(side_effect=store.commit)
    respx.post(f"{API_URL}/stream").mock(side_effect=store.stream)
    client = make_client()

    data = {"firstName": "Bruce", "lastName": "Wayne"}
    [committed] = await client.commit_events(
        [Event(subject="/customer/42", type="io.example.customer-added", data=data)]
    )
    [event] = await client.stream_events("/customer/42")

    assert event.data == data
    assert event.type == "io.example.customer-added"
    assert event.id == committed.id
    assert event.source == committed.source
    assert event.time == committed.time.replace(microsecond=0)
