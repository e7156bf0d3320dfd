"""
Tests for settings loading.
"""

import pytest

from feedmirror.core.config import load_settings
from feedmirror.domain.errors import ConfigurationError
from feedmirror.domain.models import DEFAULT_STORE_PATH, NUGET_SERVICE_INDEX


def test_defaults():
    settings = load_settings({})

    assert settings.store_path == DEFAULT_STORE_PATH
    assert settings.mirror_enabled is True
    assert settings.upstream_service_index == NUGET_SERVICE_INDEX


def test_yaml_file(tmp_path):
    config = tmp_path / "mirror.yaml"
    config.write_text(
        "store_path: /srv/mirror\n"
        "upstream_service_index: https://feed.example/v3/index.json\n"
        "upstream_timeout_seconds: 15\n"
        "log_level: debug\n",
        encoding="utf-8",
    )

    settings = load_settings({"FEEDMIRROR_CONFIG": str(config)})

    assert settings.store_path == "/srv/mirror"
    assert settings.upstream_service_index == "https://feed.example/v3/index.json"
    assert settings.upstream_timeout_seconds == 15
    assert settings.log_level == "DEBUG"


def test_environment_overrides_file(tmp_path):
    config = tmp_path / "mirror.yaml"
    config.write_text("store_path: /from/file\nmirror_enabled: true\n", encoding="utf-8")

    settings = load_settings({
        "FEEDMIRROR_CONFIG": str(config),
        "FEEDMIRROR_STORE_PATH": "/from/env",
        "FEEDMIRROR_MIRROR_ENABLED": "off",
    })

    assert settings.store_path == "/from/env"
    assert settings.mirror_enabled is False


@pytest.mark.parametrize(
    "content",
    ["store_path: [unclosed\n", "- just\n- a list\n", "upstream_timeout_seconds: 0\n"],
)
def test_invalid_file_raises(tmp_path, content):
    config = tmp_path / "mirror.yaml"
    config.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings({"FEEDMIRROR_CONFIG": str(config)})


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        load_settings({"FEEDMIRROR_CONFIG": str(tmp_path / "missing.yaml")})


def test_invalid_boolean_raises():
    with pytest.raises(ConfigurationError):
        load_settings({"FEEDMIRROR_MIRROR_ENABLED": "maybe"})
