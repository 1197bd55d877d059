import pytest
import yaml

from provisioner.models import ModpackSource
from provisioner.services.descriptor_builder import (
    DescriptorSpec,
    build_descriptor,
    render_descriptor,
)


def test_base_service_definition(settings) -> None:
    descriptor = build_descriptor(DescriptorSpec(port=25566, server_id=7), settings)
    service = descriptor["services"]["mc"]

    assert service["image"] == "itzg/minecraft-server"
    assert service["tty"] is True
    assert service["stdin_open"] is True
    assert service["ports"] == ["25566:25565"]
    assert service["volumes"] == [
        "/srv/worlds/7/data:/data",
        "/srv/worlds/7/world:/world",
    ]
    assert service["healthcheck"] == {
        "test": "mc-health",
        "start_period": "1m",
        "interval": "5s",
        "retries": "20",
    }
    assert service["environment"] == {
        "EULA": "TRUE",
        "OPS": "steve",
        "MAX_MEMORY": "4G",
    }


def test_version_difficulty_and_world(settings) -> None:
    spec = DescriptorSpec(
        port=25565,
        server_id=1,
        version="1.20.1",
        difficulty="hard",
        world_asset="w-uuid",
    )
    env = build_descriptor(spec, settings)["services"]["mc"]["environment"]

    assert env["VERSION"] == "1.20.1"
    assert env["DIFFICULTY"] == "hard"
    assert env["WORLD"] == "/world/w-uuid"
    assert "MODPACK_PLATFORM" not in env


def test_remote_url_modpack(settings) -> None:
    spec = DescriptorSpec(
        port=25565,
        server_id=1,
        modpack=ModpackSource.remote_url,
        modpack_url="https://www.curseforge.com/minecraft/modpacks/example",
    )
    env = build_descriptor(spec, settings)["services"]["mc"]["environment"]

    assert env["MODPACK_PLATFORM"] == "AUTO_CURSEFORGE"
    assert env["CF_API_KEY"] == "cf-key"
    assert env["CF_PAGE_URL"] == "https://www.curseforge.com/minecraft/modpacks/example"
    assert "CF_SLUG" not in env


def test_uploaded_modpack(settings) -> None:
    spec = DescriptorSpec(
        port=25565,
        server_id=1,
        modpack=ModpackSource.file,
        modpack_asset="mp-uuid",
    )
    env = build_descriptor(spec, settings)["services"]["mc"]["environment"]

    assert env["CF_SLUG"] == "custom"
    assert env["CF_MODPACK_ZIP"] == "/world/mp-uuid"
    assert "CF_PAGE_URL" not in env


def test_uploaded_modpack_requires_asset(settings) -> None:
    with pytest.raises(ValueError):
        build_descriptor(
            DescriptorSpec(port=25565, server_id=1, modpack=ModpackSource.file), settings
        )


def test_build_is_deterministic(settings) -> None:
    spec = DescriptorSpec(port=25565, server_id=3, version="1.21", difficulty="easy")

    assert build_descriptor(spec, settings) == build_descriptor(spec, settings)


def test_rendered_yaml_keeps_scalar_types(settings) -> None:
    descriptor = build_descriptor(DescriptorSpec(port=25565, server_id=3), settings)
    parsed = yaml.safe_load(render_descriptor(descriptor))

    service = parsed["services"]["mc"]
    assert parsed == descriptor
    assert service["tty"] is True
    assert service["environment"]["EULA"] == "TRUE"
    assert service["healthcheck"]["retries"] == "20"
    assert service["ports"] == ["25565:25565"]
