import pytest

from conftest import make_settings
from provisioner.config import load_settings, load_versions, missing_keys
from provisioner.errors import StorageFailure


def test_load_settings_reads_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MIN_PORT", "30000")
    monkeypatch.setenv("MAX_PORT", "not-a-number")
    monkeypatch.setenv("DOUP_URL", "https://doup.test/")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "worlds"))
    monkeypatch.delenv("HOST_STORAGE_ROOT", raising=False)

    settings = load_settings()

    assert settings.min_port == 30000
    assert settings.max_port == 25665
    assert settings.doup_url == "https://doup.test"
    assert settings.host_storage_root == settings.storage_root
    assert settings.broker_timeout_seconds == 5.0
    assert settings.input_timeout_seconds == 60.0


def test_missing_keys(tmp_path) -> None:
    settings = make_settings(tmp_path, admin_player="", doup_token=" ")

    assert missing_keys(settings) == ["ADMIN_PLAYER", "DOUP_TOKEN"]


def test_load_versions(tmp_path) -> None:
    path = tmp_path / "versions.json"
    path.write_text('["1.21", "", 3, "1.20.1"]', encoding="utf-8")

    assert load_versions(str(path)) == ["1.21", "1.20.1"]


@pytest.mark.parametrize("content", ["{not json", '{"versions": []}'])
def test_load_versions_rejects_bad_files(tmp_path, content) -> None:
    path = tmp_path / "versions.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(StorageFailure):
        load_versions(str(path))


def test_load_versions_missing_file(tmp_path) -> None:
    with pytest.raises(StorageFailure) as excinfo:
        load_versions(str(tmp_path / "absent.json"))

    assert excinfo.value.message == "Failed to read versions list."
