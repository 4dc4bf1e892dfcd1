"""Weaver live-check process management."""

from fixtureops.live.binary import download_binary, ensure_registry, locate_binary, release_url
from fixtureops.live.process import LOCALHOST, LiveCheckConfig, LiveCheckProcess

__all__ = [
    "LiveCheckConfig",
    "LiveCheckProcess",
    "LOCALHOST",
    "locate_binary",
    "download_binary",
    "release_url",
    "ensure_registry",
]
