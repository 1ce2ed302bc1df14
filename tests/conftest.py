"""Shared fakes: an in-memory HTTP fetcher and a manually advanced scheduler."""

import asyncio
from contextlib import asynccontextmanager

import aiohttp
import pytest

from strata.core.session import Session
from strata.media.fetch import ByteStream, Fetcher
from strata.models.config import PlayerConfig


class ManualTimer:
    def __init__(self, when, delay, callback):
        self.when = when
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Collects timers and fires them only when the test advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.now + delay, delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target

    def run_next(self):
        timer = min(self.pending, key=lambda t: t.when)
        self.advance(timer.when - self.now)
        return timer


class FakeFetcher(Fetcher):
    """
    Serves canned responses by URL.

    A response is bytes/str (HTTP 200), a `(status, body)` tuple, an exception
    instance to raise, or a list of those consumed one per request (the last
    entry repeats). Unknown URLs answer 404.
    """

    def __init__(self, responses=None, chunk_size=4, **kwargs):
        kwargs.setdefault("backoff_base", 0.001)
        kwargs.setdefault("backoff_max", 0.001)
        super().__init__(chunk_size=chunk_size, **kwargs)
        self.responses = dict(responses or {})
        self.requests = []
        self.on_request = None

    def _next(self, url):
        self.requests.append(url)
        if self.on_request is not None:
            self.on_request(url)
        response = self.responses.get(url, (404, b""))
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, BaseException):
            raise response
        status, body = response if isinstance(response, tuple) else (200, response)
        if isinstance(body, str):
            body = body.encode("utf-8")
        return status, body

    async def _request(self, url):
        await asyncio.sleep(0)
        return self._next(url)

    @asynccontextmanager
    async def open_stream(self, url):
        status, body = self._next(url)
        if status >= 400:
            raise aiohttp.ClientConnectionError(f"HTTP {status}")

        async def chunks():
            for i in range(0, len(body), self.chunk_size):
                await asyncio.sleep(0)
                yield body[i : i + self.chunk_size]

        yield ByteStream(len(body), chunks())


class TickClock:
    """A millisecond clock that advances a fixed step on every read."""

    def __init__(self, step=100.0):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def make_session(tmp_path, scheduler, fetcher):
    def factory(**kwargs):
        config = kwargs.pop("config", None) or PlayerConfig(download_dir=str(tmp_path))
        kwargs.setdefault("fetcher", fetcher)
        kwargs.setdefault("scheduler", scheduler)
        kwargs.setdefault("clock", TickClock())
        return Session(config, **kwargs)

    return factory
