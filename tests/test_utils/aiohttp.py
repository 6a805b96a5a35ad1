import json
from http import HTTPStatus
from typing import Any, Self, TypedDict

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL


class FakeResponseDef(TypedDict):
    status: int
    data: bytes | str


class FakeResponse:
    def __init__(self, data: str | bytes, status: int = 200, url: str = "") -> None:
        self._data = data.encode() if isinstance(data, str) else data
        self.status = status
        self.url = URL(url)

    def raise_for_status(self) -> None:
        if self.status >= HTTPStatus.BAD_REQUEST:
            # Create a minimal request_info to avoid AttributeError when converting to string
            request_info = aiohttp.RequestInfo(
                url=self.url,
                method="GET",
                headers=CIMultiDictProxy(CIMultiDict()),
                real_url=self.url,
            )
            raise aiohttp.ClientResponseError(
                request_info=request_info,
                history=(),
                status=self.status,
            )

    async def json(self, **kwargs: Any) -> Any:
        return json.loads(self._data.decode())

    async def text(self) -> str:
        return self._data.decode()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        pass


class FakeSession:
    """Stands in for aiohttp.ClientSession, answers by exact url, 404 otherwise."""

    def __init__(self, responses: dict[str, FakeResponseDef], error: Exception | None = None) -> None:
        self.responses = responses
        self.error = error
        self.requested: list[str] = []
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requested.append(url)
        if self.error is not None:
            raise self.error

        response_def = self.responses.get(url)
        if response_def is None:
            return FakeResponse(data=b"", status=404, url=url)

        return FakeResponse(data=response_def["data"], status=response_def["status"], url=url)

    async def __aenter__(self) -> Self:
        self.closed = False
        return self

    async def __aexit__(self, *args: object) -> None:
        self.closed = True
