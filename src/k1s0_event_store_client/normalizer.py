"""イベントレコードの正規化"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .models import Event, EventStoreConfig

DEFAULT_DATA_CONTENT_TYPE = "application/json"
DEFAULT_SPEC_VERSION = "1.0"


@dataclass(frozen=True)
class EventDefaults:
    """正規化で補う既定値。"""

    source: str
    data_content_type: str = DEFAULT_DATA_CONTENT_TYPE
    spec_version: str = DEFAULT_SPEC_VERSION

    @classmethod
    def from_config(cls, config: EventStoreConfig) -> EventDefaults:
        return cls(source=config.api_url)


def normalize_event(event: Event, defaults: EventDefaults) -> Event:
    """空の項目だけに既定値を補った新しい Event を返す。

    id → source → data_content_type → spec_version → time の順に評価し、
    設定済みの値は上書きしない。引数の event は変更しない。
    """
    changes: dict[str, Any] = {}
    if not event.id:
        changes["id"] = str(uuid.uuid4())
    if not event.source:
        changes["source"] = defaults.source
    if not event.data_content_type:
        changes["data_content_type"] = defaults.data_content_type
    if not event.spec_version:
        changes["spec_version"] = defaults.spec_version
    if event.time is None:
        changes["time"] = datetime.now(timezone.utc)
    if not changes:
        return event
    return dataclasses.replace(event, **changes)
