"""Test fixtures for tm2bd."""

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any structlog.configure() done by the code under test."""
    yield
    structlog.reset_defaults()
