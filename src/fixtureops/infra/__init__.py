"""Container infrastructure."""

from fixtureops.infra.docker import (
    ContainerOrchestrator,
    DockerCli,
    DockerContainer,
    ExecResult,
    sweep_orphans,
)

__all__ = [
    "ContainerOrchestrator",
    "DockerContainer",
    "DockerCli",
    "ExecResult",
    "sweep_orphans",
]
