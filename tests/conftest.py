from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from kiroku import Forwarder, ForwarderConfig, reset_logging

ENDPOINT = 'https://abc12345.live.example.com'
TOKEN = 'dt0c01.ABCDEF.SECRET123'

ENV_VARS = (
    'KIROKU_ENDPOINT', 'DT_ENDPOINT',
    'KIROKU_API_TOKEN', 'DT_API_TOKEN',
    'KIROKU_SERVICE_NAME', 'WEBSITE_SITE_NAME',
    'KIROKU_SERVICE_NAMESPACE', 'KIROKU_CLOUD_PLATFORM',
    'KIROKU_HOST_NAME', 'KIROKU_ENV', 'ASPNETCORE_ENVIRONMENT',
    'KIROKU_TIMEOUT', 'KIROKU_QUIET_LEVEL',
    'KIROKU_CA_BUNDLE', 'SSL_CERT_FILE',
)


class Backend:
    """
    Stand-in for the ingest API, served through `httpx.MockTransport`.

    `delay` is either seconds or a fn(request) -> seconds; `error` is
    raised instead of answering.
    """

    def __init__(self, status: int = 202, delay=0.0, error: Exception | None = None,
                 text: str = ''):
        self.status = status
        self.delay = delay
        self.error = error
        self.text = text
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        delay = self.delay(request) if callable(self.delay) else self.delay
        if delay:
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, text=self.text)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    reset_logging()


@pytest.fixture
def config() -> ForwarderConfig:
    return ForwarderConfig(
        endpoint=ENDPOINT,
        api_token=TOKEN,
        service_name='kiroku-tests',
        host_name='test-host',
        environment='test',
        timeout=1.0,
    )


@pytest.fixture
def backend() -> Backend:
    return Backend()


@pytest.fixture
async def forwarder(config, backend):
    async with backend.client() as client:
        yield Forwarder(config, client=client)
