"""Configuration for fixtureops."""

from fixtureops.config.settings import (
    DEFAULT_ADMIN_PORT,
    DEFAULT_INACTIVITY_TIMEOUT,
    DEFAULT_INGEST_PORT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROBE_TIMEOUT,
    FixtureOpsSettings,
    get_settings,
    load_settings,
)

__all__ = [
    "FixtureOpsSettings",
    "load_settings",
    "get_settings",
    "DEFAULT_INGEST_PORT",
    "DEFAULT_ADMIN_PORT",
    "DEFAULT_INACTIVITY_TIMEOUT",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_PROBE_TIMEOUT",
]
