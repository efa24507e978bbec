"""Radio transports used to observe local devices."""

from edgenode_core.radio.interfaces import RadioTransport
from edgenode_core.radio.snapshot import SnapshotRadio

__all__ = [
    "RadioTransport",
    "SnapshotRadio",
]
