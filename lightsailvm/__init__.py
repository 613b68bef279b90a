"""lightsailvm - provision Docker hosts on AWS Lightsail."""

from .driver import Driver
from .errors import (
    ErrorKind,
    ImageUnavailable,
    InstanceCreateFailed,
    InstanceInfoUnavailable,
    InstanceNotReadyTimeout,
    KeyGenerationFailed,
    KeyImportFailed,
    KeyImportRejected,
    LightsailVMError,
    MachineNotFound,
    MissingCredentials,
    PortExposeFailed,
    ProviderCallFailed,
    ProviderError,
    PublicKeyUnreadable,
    SizeUnavailable,
    TeardownFailed,
    UnsupportedOperation,
    ZoneUnavailable,
)
from .providers import BotoLightsail, LightsailApi
from .server import probe_state, resolve_url
from .store import MachineStore
from .types import (
    Credentials,
    InstanceResource,
    KeyPairResource,
    MachineConfig,
    MachineRecord,
    MachineState,
)
from .validate import validate_config

__all__ = [
    "BotoLightsail",
    "Credentials",
    "Driver",
    "ErrorKind",
    "ImageUnavailable",
    "InstanceCreateFailed",
    "InstanceInfoUnavailable",
    "InstanceNotReadyTimeout",
    "InstanceResource",
    "KeyGenerationFailed",
    "KeyImportFailed",
    "KeyImportRejected",
    "KeyPairResource",
    "LightsailApi",
    "LightsailVMError",
    "MachineConfig",
    "MachineNotFound",
    "MachineRecord",
    "MachineState",
    "MachineStore",
    "MissingCredentials",
    "PortExposeFailed",
    "ProviderCallFailed",
    "ProviderError",
    "PublicKeyUnreadable",
    "SizeUnavailable",
    "TeardownFailed",
    "UnsupportedOperation",
    "ZoneUnavailable",
    "probe_state",
    "resolve_url",
    "validate_config",
]
