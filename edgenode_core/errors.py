class EdgeNodeError(Exception):
    """Base error for the edge node manager."""


class RecoverableError(EdgeNodeError):
    """Indicates the operation can be retried safely on a later pass."""


class PermanentError(EdgeNodeError):
    """Indicates the operation should not be retried."""


class TransientIOError(RecoverableError):
    """A single remote or radio call failed."""


class TransportError(TransientIOError):
    """The radio transport is unavailable or timed out."""


class ScanError(TransportError):
    """Scanning for visible devices failed."""


class ProbeError(TransportError):
    """Probing the liveness of one device failed."""


class ProvisioningError(RecoverableError):
    """Registering a new device against the backend failed."""


class StoreError(RecoverableError):
    """Reading from or writing to the persistent store failed."""


class DecodeError(PermanentError):
    """A stored device record could not be decoded."""


class ValidationError(PermanentError):
    """Input validation failure."""


class ConfigurationError(PermanentError):
    """Static configuration is malformed."""


class ArtifactNotFound(PermanentError):
    """No local application artifact is available."""


class PassInProgressError(EdgeNodeError):
    """A reconciliation pass is already running for the application."""
