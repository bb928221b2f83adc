"""Shared test fixtures."""

from __future__ import annotations

import pytest

from autobuilder.settings import Settings


@pytest.fixture()
def make_settings():
    def _make(**overrides) -> Settings:
        values = {
            "GITHUB_TOKEN": "ghp_test",
            "GITHUB_API_BASE": "https://api.github.test",
            "OPENAI_API_KEY": "",
            "DEFAULT_SECRET": "demo-secret",
            "STUDENT_SECRETS": {},
            "GIT_USER_NAME": "Test Bot",
            "GIT_USER_EMAIL": "bot@example.com",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
