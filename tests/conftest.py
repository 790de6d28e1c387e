"""Shared fixtures for flowrag tests."""

from __future__ import annotations

import os

# Keep Rich from wrapping CLI output (e.g. long tmp paths) at 80 columns.
os.environ.setdefault("COLUMNS", "200")

import pytest  # noqa: E402

from flowrag.config import FlowragConfig  # noqa: E402
from tests.helpers import FakeProvider  # noqa: E402


@pytest.fixture
def config() -> FlowragConfig:
    """Default config with every dispatch and batch delay set to zero."""
    cfg = FlowragConfig()
    cfg.dispatch.stagger_seconds = 0.0
    cfg.dispatch.commit_delay_seconds = 0.0
    cfg.dispatch.poll_interval_seconds = 0.01
    cfg.embedding.batch_delay_seconds = 0.0
    cfg.provider.api_key_env = ""
    cfg.fetch.api_key_env = ""
    return cfg


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()
