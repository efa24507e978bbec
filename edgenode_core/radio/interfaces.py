from __future__ import annotations

from typing import Protocol


class RadioTransport(Protocol):
    """Scan-and-probe access to locally attached devices.

    Both calls block for at most ``timeout_s`` seconds and raise
    ``TransportError`` when the radio is unavailable.
    """

    def scan(self, scope: str, timeout_s: int) -> set[str]:
        ...

    def online(self, local_uuid: str, timeout_s: int) -> bool:
        ...
