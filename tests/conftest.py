"""Shared test fixtures for the probe test suite."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from fakes import FakeHttp
from nodeprobe.cache.result_cache import InMemoryResultCache, ProbeResultCache
from nodeprobe.config.settings import ProbeSettings
from nodeprobe.integration.core_client import ProxyCoreClient
from nodeprobe.services.orchestrator import BatchOrchestrator


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> ProbeSettings:
    """Test settings: no warm-up wait, no retry backoff."""
    return ProbeSettings(
        core_start_delay_ms=0,
        retry_delay_ms=0,
        retries=0,
        concurrency=4,
    )


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def result_cache() -> ProbeResultCache:
    return ProbeResultCache(InMemoryResultCache())


@pytest.fixture
def orchestrator(settings: ProbeSettings, fake_http: FakeHttp, result_cache: ProbeResultCache):
    """Orchestrator whose core and probe traffic both go to ``fake_http``."""
    core = ProxyCoreClient(settings.core_api_url, http=fake_http)  # type: ignore[arg-type]
    with patch("nodeprobe.services.orchestrator.HttpAdapter", return_value=fake_http):
        yield BatchOrchestrator(settings=settings, core_client=core, cache=result_cache)

