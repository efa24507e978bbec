from edgenode_core.supervisor.client import ProvisioningClient, SupervisorClient
from edgenode_core.supervisor.types import (
    ApplicationInfo,
    ProvisionedIdentity,
    SupervisorConfig,
)

__all__ = [
    "ApplicationInfo",
    "ProvisionedIdentity",
    "ProvisioningClient",
    "SupervisorClient",
    "SupervisorConfig",
]
