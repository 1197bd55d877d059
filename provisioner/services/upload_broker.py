import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional

import httpx

from ..config import Settings
from ..errors import BrokerUnavailable, StorageFailure

logger = logging.getLogger(__name__)

STATUS_READY = 200
STATUS_PENDING = 202


def backoff_delays() -> Iterator[int]:
    """Delays between polls of a pending upload: 10s twice, 30s once, then 60s forever."""
    yield 10
    yield 10
    yield 30
    while True:
        yield 60


@dataclass
class UploadSession:
    uuid: str
    target_path: str
    polls: int = 0


class UploadBrokerClient:
    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = settings.doup_url.rstrip("/")
        self.token = settings.doup_token
        self.timeout = httpx.Timeout(settings.broker_timeout_seconds)
        self._http = http_client

    def upload_link(self, uuid: str) -> str:
        return f"{self.base_url}/upload?uuid={uuid}"

    async def generate_upload(self) -> str:
        response = await self._post("/generate_upload", {"token": self.token})
        if response.status_code != STATUS_READY:
            raise BrokerUnavailable(
                f"Upload broker refused to generate an upload ({response.status_code})"
            )
        uuid = response.text.strip()
        if not uuid or "/" in uuid or uuid in {".", ".."}:
            raise BrokerUnavailable("Upload broker returned a malformed upload id")
        return uuid

    async def give_upload(self, uuid: str) -> httpx.Response:
        return await self._post("/give_upload", {"token": self.token, "uuid": uuid})

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _post(self, path: str, payload: dict[str, str]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return await self._client().post(url, json=payload, timeout=self.timeout)
        except httpx.RequestError as exc:
            logger.warning("Upload broker request to %s failed: %s", url, exc)
            raise BrokerUnavailable("Upload broker request failed.") from exc

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http


class AssetFetcher:
    """Fetch an asset that a person uploads to the broker out of band.

    ``open_session`` asks the broker for an upload id; the caller shows the
    upload link, then ``wait_for_asset`` polls until the broker hands the
    bytes over and writes them to the session's target path. There is no
    overall deadline: the upload depends on a human, so only a broker error
    ends the wait early. Cancel the calling task to abandon it.
    """

    def __init__(
        self,
        broker: UploadBrokerClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.broker = broker
        self._sleep = sleep

    async def open_session(self, target_dir: str) -> UploadSession:
        uuid = await self.broker.generate_upload()
        return UploadSession(uuid=uuid, target_path=os.path.join(target_dir, uuid))

    async def wait_for_asset(self, session: UploadSession) -> str:
        delays = backoff_delays()
        while True:
            response = await self.broker.give_upload(session.uuid)
            session.polls += 1
            if response.status_code == STATUS_READY:
                break
            if response.status_code != STATUS_PENDING:
                raise BrokerUnavailable(
                    f"Upload broker failed to deliver upload ({response.status_code})"
                )
            delay = next(delays)
            logger.debug(
                "Upload %s pending after %d poll(s), retrying in %ss",
                session.uuid,
                session.polls,
                delay,
            )
            await self._sleep(delay)

        await asyncio.to_thread(self._write, session.target_path, response.content)
        logger.info("Stored upload %s at %s", session.uuid, session.target_path)
        return session.target_path

    async def fetch(
        self,
        target_dir: str,
        on_pending: Optional[Callable[[UploadSession], Awaitable[None]]] = None,
    ) -> UploadSession:
        session = await self.open_session(target_dir)
        if on_pending is not None:
            await on_pending(session)
        await self.wait_for_asset(session)
        return session

    def _write(self, path: str, data: bytes) -> None:
        try:
            with open(path, "wb") as handle:
                handle.write(data)
        except OSError as exc:
            logger.warning("Failed to save upload to %s: %s", path, exc)
            raise StorageFailure("Failed to save uploaded file.") from exc
