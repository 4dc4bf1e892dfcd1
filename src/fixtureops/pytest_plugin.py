"""pytest integration.

Registered through the ``pytest11`` entry point. Provides:

- ``fixtureops_settings``: session-wide settings
- ``container_orchestrator``: containers released at the end of each test
- ``live_check``: a READY weaver live-check process per test

Live resources still registered when the session ends are swept, and an
interrupt (Ctrl-C) cancels in-flight waits so cleanup starts at once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from fixtureops.config import FixtureOpsSettings, get_settings, load_settings
from fixtureops.infra.docker import ContainerOrchestrator
from fixtureops.live.process import LiveCheckConfig, LiveCheckProcess
from fixtureops.runtime.registry import REGISTRY

logger = logging.getLogger(__name__)


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("fixtureops")
    group.addoption(
        "--fixtureops-config",
        action="store",
        default=None,
        help="YAML settings file for fixtureops resources",
    )
    group.addoption(
        "--weaver-registry",
        action="store",
        default=None,
        help="Semantic conventions registry used by the live_check fixture",
    )
    parser.addini("weaver_registry", "Semantic conventions registry used by the live_check fixture", default="")


def pytest_keyboard_interrupt(excinfo: pytest.ExceptionInfo[BaseException]) -> None:
    REGISTRY.cancel_all()


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    leaked = REGISTRY.sweep()
    if leaked:
        logger.warning(f"Released {leaked} resources that outlived their tests")


@pytest.fixture(scope="session")
def fixtureops_settings(pytestconfig: pytest.Config) -> FixtureOpsSettings:
    config_path = pytestconfig.getoption("fixtureops_config")
    if config_path:
        return load_settings(config_path)
    return get_settings()


@pytest.fixture
def container_orchestrator(fixtureops_settings: FixtureOpsSettings) -> Iterator[ContainerOrchestrator]:
    with ContainerOrchestrator(fixtureops_settings) as orchestrator:
        yield orchestrator


@pytest.fixture
def live_check(pytestconfig: pytest.Config, fixtureops_settings: FixtureOpsSettings) -> Iterator[LiveCheckProcess]:
    registry = pytestconfig.getoption("weaver_registry") or pytestconfig.getini("weaver_registry")
    if not registry:
        pytest.fail("live_check needs a registry: pass --weaver-registry or set weaver_registry in the ini file")

    process = LiveCheckProcess(LiveCheckConfig.from_settings(registry, fixtureops_settings), fixtureops_settings)
    with process:
        yield process
