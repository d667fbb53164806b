"""Error taxonomy for the Android TV bridge.

Every failure raised by the core carries a stable ``code`` (the class name)
and the HTTP status the request interface reports it with.
"""


class BridgeError(Exception):
    """Base error for bridge operations."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()

    @property
    def code(self) -> str:
        """Stable error name."""
        return self.__class__.__name__

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class MissingParameters(BridgeError):
    """Required parameters are missing."""


class InvalidParameter(BridgeError):
    """A parameter has an invalid value."""


class InvalidCodeFormat(BridgeError):
    """Pairing code must be exactly six alphanumeric characters."""


class NoPairingInProgress(BridgeError):
    """No pairing in progress for this device."""


class HandshakeRejected(BridgeError):
    """The TV rejected the pairing code."""


class CertificateUnavailable(BridgeError):
    """Pairing finished but no certificate was issued."""


class NotPaired(BridgeError):
    """Device is not paired."""


class DeviceNotConnected(BridgeError):
    """Device not connected."""


class SceneNotFound(BridgeError):
    """Scene not found."""

    status_code = 404


class SyncGroupNotFound(BridgeError):
    """Sync group not found."""

    status_code = 404


class InsufficientGroupSize(BridgeError):
    """A sync group needs at least two devices."""


class TransportError(BridgeError):
    """Communication with the TV failed."""
