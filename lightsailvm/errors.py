"""Errors raised by lightsailvm.

Library code raises these; only the CLI turns them into an exit status.
Provider errors are translated into ``ProviderError`` in ``providers.py``
and nowhere else looks at raw AWS error codes.
"""

from enum import Enum


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    ACCESS_DENIED = "access_denied"
    THROTTLED = "throttled"
    SERVICE = "service"
    OTHER = "other"


class LightsailVMError(Exception):
    """Base class for every error raised by lightsailvm.

    Not raised by itself; useful as something to catch.
    """


class ProviderError(LightsailVMError):
    """A Lightsail API call failed.

    :ivar kind: Internal classification of the failure
    :ivar operation: API operation name, e.g. ``create_instances``
    :ivar code: Provider error code, kept for messages only
    """

    def __init__(self, kind: ErrorKind, operation: str, code: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.operation = operation
        self.code = code
        self.message = message

    @property
    def not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    def __str__(self):
        return f"{self.operation}: {self.code}: {self.message}"


class OperationError(LightsailVMError):
    """An orchestrator step failed.

    The message is prefixed with the failing step. When the failure came
    from the provider the ``ProviderError`` is chained as ``__cause__``.
    ``cleanup_error`` is set when automatic teardown also failed.
    """

    step = "operation"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.cleanup_error: LightsailVMError | None = None

    def __str__(self):
        text = f"{self.step}: {self.message}"
        if self.cleanup_error is not None:
            text += f" (cleanup also failed: {self.cleanup_error})"
        return text


class ConfigError(OperationError):
    step = "config"


class MissingCredentials(ConfigError):
    step = "credentials"


class ZoneUnavailable(ConfigError):
    step = "zone"


class SizeUnavailable(ConfigError):
    step = "bundle"


class ImageUnavailable(ConfigError):
    step = "blueprint"


class KeyGenerationFailed(OperationError):
    step = "generate ssh key"


class KeyImportFailed(OperationError):
    step = "import ssh key"


class PublicKeyUnreadable(OperationError):
    step = "read public key"


class KeyImportRejected(OperationError):
    step = "import key pair"


class InstanceCreateFailed(OperationError):
    step = "create instance"


class InstanceNotReadyTimeout(OperationError):
    step = "wait for instance"


class InstanceInfoUnavailable(OperationError):
    step = "get instance"


class PortExposeFailed(OperationError):
    step = "open ports"


class TeardownFailed(OperationError):
    step = "teardown"


class UnsupportedOperation(OperationError):
    step = "unsupported"


class ProviderCallFailed(OperationError):
    step = "provider"

    def __init__(self, step: str, message: str):
        super().__init__(message)
        self.step = step


class MachineNotFound(OperationError):
    step = "machine"
