import json
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .errors import StorageFailure

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("ADMIN_PLAYER", "DOUP_URL", "DOUP_TOKEN")


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_path: str
    storage_root: str
    host_storage_root: str
    min_port: int
    max_port: int
    admin_player: str
    max_memory: str
    cf_api_key: str
    doup_url: str
    doup_token: str
    versions_path: str
    minecraft_image: str = "itzg/minecraft-server"
    broker_timeout_seconds: float = 5.0
    input_timeout_seconds: float = 60.0
    log_level: str = "INFO"


def load_settings() -> Settings:
    load_dotenv()
    storage_root = os.path.abspath(os.getenv("STORAGE_ROOT", "worlds"))
    host_storage_root_env = os.getenv("HOST_STORAGE_ROOT")
    host_storage_root = (
        os.path.abspath(host_storage_root_env) if host_storage_root_env else storage_root
    )
    return Settings(
        database_path=os.getenv("DATABASE_PATH", "servers.db"),
        storage_root=storage_root,
        host_storage_root=host_storage_root,
        min_port=_get_env_int("MIN_PORT", 25565),
        max_port=_get_env_int("MAX_PORT", 25665),
        admin_player=os.getenv("ADMIN_PLAYER", ""),
        max_memory=os.getenv("MAX_MEMORY", "4G"),
        cf_api_key=os.getenv("CF_API_KEY", ""),
        doup_url=os.getenv("DOUP_URL", "").rstrip("/"),
        doup_token=os.getenv("DOUP_TOKEN", ""),
        versions_path=os.getenv("VERSIONS_PATH", "versions.json"),
        minecraft_image=os.getenv("MINECRAFT_IMAGE", "itzg/minecraft-server"),
        broker_timeout_seconds=_get_env_float("BROKER_TIMEOUT_SECONDS", 5.0),
        input_timeout_seconds=_get_env_float("INPUT_TIMEOUT_SECONDS", 60.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def missing_keys(settings: Settings) -> list[str]:
    values = {
        "ADMIN_PLAYER": settings.admin_player,
        "DOUP_URL": settings.doup_url,
        "DOUP_TOKEN": settings.doup_token,
    }
    return [key for key in REQUIRED_KEYS if not values[key].strip()]


def load_versions(path: str) -> list[str]:
    """Read the list of accepted server versions.

    The file is a JSON array of strings and is re-read on every call so that
    edits are picked up without a restart.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read versions list %s: %s", path, exc)
        raise StorageFailure("Failed to read versions list.") from exc
    if not isinstance(data, list):
        raise StorageFailure("Versions list must be a JSON array")
    return [str(item) for item in data if isinstance(item, str) and item.strip()]
