"""event_store_client ライブラリの例外型定義"""

from __future__ import annotations


class EventStoreError(Exception):
    """event_store_client ライブラリのエラー基底クラス。

    API エラーの場合は status_code と body にレスポンスの内容をそのまま保持する。
    """

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.body = body
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class EventStoreErrorCodes:
    """EventStoreError のエラーコード定数。"""

    CONFIG_ERROR: str = "CONFIG_ERROR"
    VALIDATION_ERROR: str = "VALIDATION_ERROR"
    TRANSPORT_ERROR: str = "TRANSPORT_ERROR"
    API_ERROR: str = "API_ERROR"
    PRECONDITION_FAILED: str = "PRECONDITION_FAILED"
    DECODE_ERROR: str = "DECODE_ERROR"
    DELIVERY_TIMEOUT: str = "DELIVERY_TIMEOUT"


class ChannelClosedError(Exception):
    """クローズ済みかつ空のチャネルから受信しようとした場合のエラー。"""
