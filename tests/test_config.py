import pytest

from swcache import ControllerConfig


def test_partition_names() -> None:
    config = ControllerConfig()

    assert config.cache_names == ("app-conductores-azure-v1", "static-assets-v1", "api-cache-v1")
    assert ControllerConfig(version="v7", app_name="territorios").primary_cache_name == "territorios-v7"


def test_origin_is_normalized() -> None:
    assert ControllerConfig(origin="https://territorios.example/").origin == "https://territorios.example"


def test_empty_version_is_rejected() -> None:
    with pytest.raises(ValueError):
        ControllerConfig(version="")


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SWCACHE_ORIGIN", "https://territorios.example")
    monkeypatch.setenv("SWCACHE_VERSION", "v3")
    monkeypatch.delenv("SWCACHE_APP_NAME", raising=False)

    config = ControllerConfig.from_env()
    assert config.origin == "https://territorios.example"
    assert config.static_cache_name == "static-assets-v3"

    assert ControllerConfig.from_env(version="v4").api_cache_name == "api-cache-v4"
