"""Pytest configuration and shared fixtures"""

import os

import pytest


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop APP_ overrides so every test starts from the config defaults"""
    for key in list(os.environ.keys()):
        if key.startswith("APP_"):
            monkeypatch.delenv(key, raising=False)
    # Keep ConfigService from picking up a config.yaml in the working directory
    monkeypatch.setenv("APP_CONFIG_PATH", os.path.join(os.path.dirname(__file__), "absent.yaml"))
