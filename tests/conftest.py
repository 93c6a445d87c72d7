from types import SimpleNamespace

import nats
import pytest

from natsreq.core.config import get_settings


class FakeNatsClient:
    """Stands in for nats.aio.client.Client: records requests, replies or raises."""

    def __init__(self):
        self.reply = b""
        self.error = None
        self.close_error = None
        self.requests = []
        self.connect_calls = []
        self.closed = False

    async def request(self, subject, payload=b"", timeout=0.5, old_style=False, headers=None):
        self.requests.append(
            SimpleNamespace(subject=subject, payload=payload, timeout=timeout, headers=headers)
        )
        if self.error is not None:
            raise self.error
        return SimpleNamespace(subject="_INBOX.reply", data=self.reply, headers=None)

    async def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    for name in (
        "NATS_URL", "NATS_USER", "NATS_PASSWORD", "NATS_TOKEN",
        "NATSREQ_ENV_FILE", "NATSREQ_STORAGE_ROOT", "NATSREQ_REQUEST_TIMEOUT_MS",
        "NATSREQ_CONNECT_TIMEOUT", "NATSREQ_LOG_JSON",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings(reload=True)
    yield
    get_settings(reload=True)


@pytest.fixture
def fake_nats(monkeypatch):
    client = FakeNatsClient()

    async def fake_connect(**options):
        client.connect_calls.append(options)
        return client

    monkeypatch.setattr(nats, "connect", fake_connect)
    return client
