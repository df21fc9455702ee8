"""Tests for configuration resolution."""

import pytest

from upload_gateway.config import GATEWAY_PRESETS, get_gateway_settings
from upload_gateway.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GATEWAY_PRESET", "AWS_REGION", "API_NAME", "STAGE_NAME", "BUCKET_NAME"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = get_gateway_settings()

    assert settings["preset"] == "extended"
    assert settings["api_name"] == "aws-whitemap-api"
    assert settings["bucket_name"] == "aws-whitemap-cloudfront"
    assert settings["stage_name"] == "v1"
    assert settings["rate_limit"] == {"daily_quota": 1000, "burst": 10, "sustained_rate": 5}


def test_simple_preset_has_no_key_or_quota():
    settings = get_gateway_settings("simple")

    assert settings["require_api_key"] is False
    assert settings["rate_limit"] is None
    assert settings["forward_content_type"] is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GATEWAY_PRESET", "simple")
    monkeypatch.setenv("AWS_REGION", "us-west-2")
    monkeypatch.setenv("BUCKET_NAME", "other-bucket")
    monkeypatch.setenv("API_NAME", "uploads")

    settings = get_gateway_settings()

    assert settings["preset"] == "simple"
    assert settings["region"] == "us-west-2"
    assert settings["bucket_name"] == "other-bucket"
    assert settings["api_name"] == "uploads"


def test_argument_wins_over_environment(monkeypatch):
    monkeypatch.setenv("GATEWAY_PRESET", "simple")
    assert get_gateway_settings("extended")["preset"] == "extended"


def test_unknown_preset():
    with pytest.raises(ConfigurationError, match="Unknown gateway preset 'huge'"):
        get_gateway_settings("huge")


def test_settings_are_independent_copies():
    settings = get_gateway_settings("extended")
    settings["routes"].clear()
    settings["cors"]["allow_methods"].append("PATCH")

    assert len(GATEWAY_PRESETS["extended"]["routes"]) == 2
    assert "PATCH" not in get_gateway_settings("extended")["cors"]["allow_methods"]
