import os
from dataclasses import dataclass
from typing import Any, Optional

import yaml

from ..config import Settings
from ..models import ModpackSource

CONTAINER_PORT = 25565
SERVICE_NAME = "mc"
DESCRIPTOR_FILENAME = "docker-compose.yml"

HEALTHCHECK = {
    "test": "mc-health",
    "start_period": "1m",
    "interval": "5s",
    "retries": "20",
}


@dataclass(frozen=True)
class DescriptorSpec:
    port: int
    server_id: int
    version: Optional[str] = None
    difficulty: Optional[str] = None
    world_asset: Optional[str] = None
    modpack: ModpackSource = ModpackSource.none
    modpack_url: Optional[str] = None
    modpack_asset: Optional[str] = None


def build_descriptor(spec: DescriptorSpec, settings: Settings) -> dict[str, Any]:
    """Build the compose document describing one server instance.

    ``spec.version`` must already be validated against the known versions.
    Asset names are the broker uuids; they are exposed inside the container
    under the ``/world`` mount.
    """
    host_dir = os.path.join(settings.host_storage_root, str(spec.server_id))

    env: dict[str, str] = {
        "EULA": "TRUE",
        "OPS": settings.admin_player,
    }
    if spec.version:
        env["VERSION"] = spec.version
    if spec.difficulty:
        env["DIFFICULTY"] = spec.difficulty
    env["MAX_MEMORY"] = settings.max_memory

    if spec.world_asset:
        env["WORLD"] = f"/world/{spec.world_asset}"

    if spec.modpack != ModpackSource.none:
        env["MODPACK_PLATFORM"] = "AUTO_CURSEFORGE"
        env["CF_API_KEY"] = settings.cf_api_key
        if spec.modpack == ModpackSource.remote_url:
            if not spec.modpack_url:
                raise ValueError("modpack_url is required for a remote-url modpack")
            env["CF_PAGE_URL"] = spec.modpack_url
        else:
            if not spec.modpack_asset:
                raise ValueError("modpack_asset is required for an uploaded modpack")
            env["CF_SLUG"] = "custom"
            env["CF_MODPACK_ZIP"] = f"/world/{spec.modpack_asset}"

    service: dict[str, Any] = {
        "image": settings.minecraft_image,
        "tty": True,
        "stdin_open": True,
        "ports": [f"{spec.port}:{CONTAINER_PORT}"],
        "volumes": [
            f"{host_dir}/data:/data",
            f"{host_dir}/world:/world",
        ],
        "healthcheck": dict(HEALTHCHECK),
        "environment": env,
    }
    return {"services": {SERVICE_NAME: service}}


def render_descriptor(descriptor: dict[str, Any]) -> str:
    return yaml.safe_dump(descriptor, sort_keys=False, default_flow_style=False)
