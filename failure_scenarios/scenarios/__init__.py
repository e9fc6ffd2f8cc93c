"""Shared re-exports for scenario modules used by the runner."""
from __future__ import annotations

from failure_scenarios.scenarios import (
    client_retry,
    concurrent_identical,
    key_reuse_conflict,
    network_timeout,
    server_generated_key,
)

__all__ = [
    "client_retry",
    "concurrent_identical",
    "key_reuse_conflict",
    "network_timeout",
    "server_generated_key",
]
