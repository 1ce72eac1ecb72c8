"""Fixtures for live slide service tests.

These tests talk to a real slide service and are skipped unless a slide
link is provided via the SLIDESCORE_TEST_URL environment variable:

    SLIDESCORE_TEST_URL=https://host/i/<slide>/<token>/SlideScoreMetadata.json \
    pytest tests/integration -m integration

The tests only read; nothing is uploaded.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from slidebridge.client import SlideScoreClient

pytestmark = pytest.mark.integration


@pytest.fixture(scope="session")
def live_url() -> str:
    url = os.environ.get("SLIDESCORE_TEST_URL")
    if not url:
        pytest.skip("SLIDESCORE_TEST_URL not set; skipping live service tests")
    return url


@pytest.fixture
def live_client(live_url: str) -> Iterator[SlideScoreClient]:
    with SlideScoreClient(live_url) as client:
        yield client
