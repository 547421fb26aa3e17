"""Pytest configuration and fixtures for pymbtcp tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest


class FakeConnection:
    """In-memory ByteStreamConnection.

    Chunks queued with feed()/feed_eof()/feed_error() are delivered by
    receive() in order. When ``responder`` is set, each sent request is
    passed to it and the returned chunks are queued as the device reply.
    """

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.closed = False
        self.send_error: Exception | None = None
        self.responder: Callable[[bytes], list[bytes]] | None = None
        self._chunks: asyncio.Queue[bytes | BaseException | None] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._chunks.put_nowait(data)

    def feed_eof(self) -> None:
        self._chunks.put_nowait(None)

    def feed_error(self, err: BaseException) -> None:
        self._chunks.put_nowait(err)

    async def send(self, data: bytes) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(bytes(data))
        if self.responder is not None:
            for chunk in self.responder(bytes(data)):
                self.feed(chunk)

    async def receive(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._chunks.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_connection() -> FakeConnection:
    """Provide a fresh in-memory connection."""
    return FakeConnection()
