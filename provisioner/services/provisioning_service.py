import asyncio
import logging
import os
from typing import Optional, Protocol

from ..config import Settings, load_versions
from ..errors import (
    DuplicateName,
    InvalidVersion,
    NoInputProvided,
    ServiceError,
    StorageFailure,
)
from ..models import ModpackSource, ServerCreateRequest
from ..store import ServerRecord, ServerStore
from .descriptor_builder import (
    DESCRIPTOR_FILENAME,
    DescriptorSpec,
    build_descriptor,
    render_descriptor,
)
from .port_allocator import allocate_port
from .upload_broker import AssetFetcher, UploadSession

logger = logging.getLogger(__name__)


class Requester(Protocol):
    """The party that asked for the server and receives progress updates."""

    async def notify(self, kind: str, message: str) -> None: ...

    async def request_input(self, prompt: str, timeout: float) -> Optional[str]: ...


class ProvisioningService:
    def __init__(self, settings: Settings, store: ServerStore, fetcher: AssetFetcher) -> None:
        self.settings = settings
        self.store = store
        self.fetcher = fetcher

    async def provision(self, request: ServerCreateRequest, requester: Requester) -> ServerRecord:
        """Create a server record, its storage tree and its compose file.

        Nothing created before a failure is rolled back: a record inserted
        before a broker or storage error stays in place together with its
        directory.
        """
        name = self._normalize_name(request.name)

        if await asyncio.to_thread(self.store.name_exists, name):
            raise DuplicateName(f"A server named {name} already exists")
        used_ports = await asyncio.to_thread(self.store.used_ports)
        port = allocate_port(used_ports, self.settings.min_port, self.settings.max_port)

        await requester.notify("progress", "Creating server.")

        version = request.version.strip() if request.version else None
        if version:
            versions = await asyncio.to_thread(load_versions, self.settings.versions_path)
            if version not in versions:
                raise InvalidVersion(f"{version} is not a valid version")
        difficulty = request.difficulty.value if request.difficulty else None

        record = await asyncio.to_thread(
            self.store.insert_server,
            name,
            version or "latest",
            difficulty or "easy",
            lambda used: allocate_port(
                used, self.settings.min_port, self.settings.max_port, preferred=port
            ),
        )

        instance_dir = self.instance_dir(record.id)
        world_dir = os.path.join(instance_dir, "world")
        await asyncio.to_thread(self._prepare_storage, instance_dir)

        world_asset = None
        if request.include_world:
            session = await self.fetcher.fetch(
                world_dir, on_pending=self._announce_upload(requester, "world")
            )
            world_asset = session.uuid

        modpack_url = None
        modpack_asset = None
        if request.modpack == ModpackSource.remote_url:
            modpack_url = await self._ask_modpack_url(requester)
        elif request.modpack == ModpackSource.file:
            session = await self.fetcher.fetch(
                world_dir, on_pending=self._announce_upload(requester, "modpack")
            )
            modpack_asset = session.uuid

        descriptor = build_descriptor(
            DescriptorSpec(
                port=record.port,
                server_id=record.id,
                version=version,
                difficulty=difficulty,
                world_asset=world_asset,
                modpack=request.modpack,
                modpack_url=modpack_url,
                modpack_asset=modpack_asset,
            ),
            self.settings,
        )
        await asyncio.to_thread(
            self._write_descriptor, instance_dir, render_descriptor(descriptor)
        )

        await requester.notify("created", f"Server {name} has been created!")
        logger.info('Created "%s" server on port %s (id=%s)', name, record.port, record.id)
        return record

    def instance_dir(self, server_id: int) -> str:
        return os.path.join(self.settings.storage_root, str(server_id))

    def _normalize_name(self, name: str) -> str:
        cleaned = name.strip().lower()
        if not cleaned:
            raise ServiceError(400, "name cannot be blank")
        if len(cleaned) > 25:
            raise ServiceError(400, "name must be at most 25 characters")
        return cleaned

    def _announce_upload(self, requester: Requester, asset: str):
        async def announce(session: UploadSession) -> None:
            link = self.fetcher.broker.upload_link(session.uuid)
            await requester.notify("upload", f"Please upload the {asset} at {link}")

        return announce

    async def _ask_modpack_url(self, requester: Requester) -> str:
        reply = await requester.request_input(
            "Please send the modpack link.", self.settings.input_timeout_seconds
        )
        if reply is None or not reply.strip():
            logger.warning("No modpack link received within %ss", self.settings.input_timeout_seconds)
            raise NoInputProvided("You did not send a modpack link.")
        return reply.strip()

    def _prepare_storage(self, instance_dir: str) -> None:
        try:
            os.makedirs(os.path.join(instance_dir, "data"), exist_ok=True)
            os.makedirs(os.path.join(instance_dir, "world"), exist_ok=True)
        except OSError as exc:
            logger.warning("Failed to create %s: %s", instance_dir, exc)
            raise StorageFailure("Failed to create server directory.") from exc

    def _write_descriptor(self, instance_dir: str, content: str) -> None:
        path = os.path.join(instance_dir, DESCRIPTOR_FILENAME)
        try:
            with open(path, "w", encoding="utf-8") as handle:
                handle.write(content)
        except OSError as exc:
            logger.warning("Failed to write %s: %s", path, exc)
            raise StorageFailure(f"Failed to write {DESCRIPTOR_FILENAME}.") from exc
