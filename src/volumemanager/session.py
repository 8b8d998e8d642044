"""
Cycle-global state owned by the control loop.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3


@dataclass(frozen=True)
class AuthCredential:
    """An acquired cluster credential. `expires_at` of None never expires."""

    principal: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class Session:
    """
    Endpoint selection, failure accounting and reload bookkeeping.

    The endpoint index survives across cycles and only moves on transport
    failures. The failure counter is reset by a successful inventory fetch.
    """

    endpoints: List[str]
    endpoint_index: int = 0
    failure_count: int = 0
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    credential: Optional[AuthCredential] = None
    last_loaded: float = 0.0
    config_reloaded: bool = False

    def __post_init__(self) -> None:
        if not self.endpoints:
            raise ValueError("Session requires at least one endpoint")

    @property
    def endpoint(self) -> str:
        return self.endpoints[self.endpoint_index]

    def failover(self) -> str:
        """Advances to the next endpoint (round-robin) and returns it."""
        previous = self.endpoint
        self.endpoint_index = (self.endpoint_index + 1) % len(self.endpoints)
        logger.info(f"Failed over REST node from {previous} to {self.endpoint}")
        return self.endpoint

    def record_transport_failure(self) -> bool:
        """
        Fails over and counts one consecutive transport failure.

        Returns:
            True exactly once per run of failures, when the counter
            reaches the alarm threshold.
        """
        self.failover()
        self.failure_count += 1
        return self.failure_count == self.failure_threshold

    def reset_failures(self) -> None:
        self.failure_count = 0

    def update_endpoints(self, endpoints: List[str]) -> None:
        """Replaces the endpoint list after a configuration reload."""
        if not endpoints:
            raise ValueError("Session requires at least one endpoint")
        if endpoints == self.endpoints:
            return
        current = self.endpoint
        self.endpoints = list(endpoints)
        self.endpoint_index = self.endpoints.index(current) if current in self.endpoints else 0
