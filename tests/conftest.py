import json
from typing import Optional

import httpx
import pytest

from provisioner.config import Settings
from provisioner.services.upload_broker import AssetFetcher, UploadBrokerClient
from provisioner.store import ServerStore


def make_settings(tmp_path, **overrides) -> Settings:
    versions_path = tmp_path / "versions.json"
    if not versions_path.exists():
        versions_path.write_text(json.dumps(["1.20.1", "1.20.4", "1.21"]), encoding="utf-8")
    values = dict(
        database_path=str(tmp_path / "servers.db"),
        storage_root=str(tmp_path / "worlds"),
        host_storage_root="/srv/worlds",
        min_port=25565,
        max_port=25568,
        admin_player="steve",
        max_memory="4G",
        cf_api_key="cf-key",
        doup_url="https://doup.test",
        doup_token="doup-token",
        versions_path=str(versions_path),
    )
    values.update(overrides)
    return Settings(**values)


class FakeRequester:
    def __init__(self, reply: Optional[str] = None) -> None:
        self.reply = reply
        self.events: list[tuple[str, str]] = []
        self.prompts: list[tuple[str, float]] = []

    async def notify(self, kind: str, message: str) -> None:
        self.events.append((kind, message))

    async def request_input(self, prompt: str, timeout: float) -> Optional[str]:
        self.prompts.append((prompt, timeout))
        return self.reply

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


class FakeBroker:
    """Scripted upload broker served through ``httpx.MockTransport``."""

    def __init__(self, give_responses: list[httpx.Response], uuid: str = "abc-123") -> None:
        self.uuid = uuid
        self.give_responses = list(give_responses)
        self.requests: list[tuple[str, dict]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if request.url.path == "/generate_upload":
            return httpx.Response(200, text=self.uuid)
        if request.url.path == "/give_upload":
            return self.give_responses.pop(0)
        return httpx.Response(404)

    def polls(self) -> int:
        return sum(1 for path, _ in self.requests if path == "/give_upload")


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_fetcher(settings: Settings, broker: FakeBroker, sleep=None) -> AssetFetcher:
    http = httpx.AsyncClient(transport=httpx.MockTransport(broker.handler))
    client = UploadBrokerClient(settings, http_client=http)
    return AssetFetcher(client, sleep=sleep or RecordingSleep())


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def store(settings) -> ServerStore:
    server_store = ServerStore(settings.database_path)
    server_store.init_db()
    return server_store
