"""
This file contains shared fixtures for all tests.
"""
from datetime import datetime
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from volumemanager.models import GroupSpec, Interval
from volumemanager.session import Session

# A fixed reference time keeps suffix arithmetic deterministic
NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_spec() -> Callable[..., GroupSpec]:
    """Factory for GroupSpec objects with sensible defaults."""

    def _make(**overrides: Any) -> GroupSpec:
        values = {
            "name": "foo",
            "path_format": "/data/foo/%Y/%m/%d",
            "owner": "appuser",
            "group": "appgroup",
            "accounting_entity": "appuser",
            "topology": "/data",
            "interval": Interval.DAY,
            "retention": 1,
            "ahead": 2,
        }
        values.update(overrides)
        return GroupSpec(**values)

    return _make


@pytest.fixture
def session() -> Session:
    return Session(endpoints=["node-a", "node-b"])


@pytest.fixture
def cluster() -> MagicMock:
    """A ClusterAPI double whose calls all succeed."""
    api = MagicMock()
    api.list_volumes.return_value = []
    api.get_volume_access_policy.return_value = ("", "")
    return api
