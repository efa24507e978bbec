"""Application reconciliation and the fleet loop."""

from edgenode_core.applications.artifacts import (
    ARTIFACT_NAME,
    ApplicationArtifact,
    resolve_application,
)
from edgenode_core.applications.manager import FleetManager
from edgenode_core.applications.reconciler import Application, PassReport

__all__ = [
    "ARTIFACT_NAME",
    "Application",
    "ApplicationArtifact",
    "FleetManager",
    "PassReport",
    "resolve_application",
]
