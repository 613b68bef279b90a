"""Type definitions for lightsailvm."""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Literal, TypedDict

MachineState = Literal["Running", "Starting", "Stopping", "Stopped", "Error", "NotFound"]

# Lightsail instance state codes
STATE_PENDING = 0
STATE_RUNNING = 16
STATE_SHUTTING_DOWN = 32
STATE_TERMINATED = 48
STATE_STOPPING = 64
STATE_STOPPED = 80

DEFAULT_REGION = "ap-northeast-1"
DEFAULT_ZONE = "a"
DEFAULT_BLUEPRINT_ID = "ubuntu_18_04"
DEFAULT_BUNDLE_ID = "small_2_0"
DEFAULT_ENGINE_PORT = 2376
DEFAULT_SSH_PORT = 22


class ZoneInfo(TypedDict):
    """Availability zone as reported by get_regions."""

    name: str
    state: str


class CatalogEntry(TypedDict):
    """Bundle or blueprint catalog entry."""

    id: str
    active: bool


class InstanceInfo(TypedDict, total=False):
    """Instance details as returned by the provider adapter."""

    name: str
    ip: str
    username: str
    state_code: int
    state_name: str


class InstanceStateInfo(TypedDict):
    code: int
    name: str


@dataclass(frozen=True)
class Credentials:
    """Explicit AWS credentials. All empty means the default boto3 chain."""

    access_key: str | None = None
    secret_key: str | None = None
    session_token: str | None = None
    profile: str | None = None

    def session_kwargs(self) -> dict:
        """:return: Keyword arguments for boto3.Session()"""
        kwargs = {}
        if self.access_key and self.secret_key:
            kwargs["aws_access_key_id"] = self.access_key
            kwargs["aws_secret_access_key"] = self.secret_key
            if self.session_token:
                kwargs["aws_session_token"] = self.session_token
        elif self.profile:
            kwargs["profile_name"] = self.profile
        return kwargs


@dataclass(frozen=True)
class MachineConfig:
    """Immutable input describing one machine."""

    name: str
    region: str = DEFAULT_REGION
    zone: str = DEFAULT_ZONE
    blueprint_id: str = DEFAULT_BLUEPRINT_ID
    bundle_id: str = DEFAULT_BUNDLE_ID
    ssh_key_path: str | None = None
    engine_port: int = DEFAULT_ENGINE_PORT
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_user: str | None = None
    extra_ports: tuple[tuple[int, int], ...] = ()
    existing_address: str | None = None
    credentials: Credentials = field(default_factory=Credentials)
    ready_timeout: float = 300.0
    poll_interval: float = 5.0
    probe_timeout: float = 10.0

    @property
    def availability_zone(self) -> str:
        return f"{self.region}{self.zone}"

    @property
    def managed(self) -> bool:
        """True when this driver owns the remote resources."""
        return not self.existing_address


@dataclass(frozen=True)
class KeyPairResource:
    name: str
    private_key_path: Path
    public_key_path: Path


@dataclass
class InstanceResource:
    """Cached view of a Lightsail instance. Re-fetch before relying on it."""

    name: str
    public_ip: str = ""
    username: str = ""
    state_code: int = STATE_PENDING
    state_name: str = "pending"

    @property
    def running(self) -> bool:
        return self.state_code == STATE_RUNNING

    @classmethod
    def from_info(cls, info: InstanceInfo) -> "InstanceResource":
        return cls(
            name=info["name"],
            public_ip=info.get("ip", ""),
            username=info.get("username", ""),
            state_code=info.get("state_code", STATE_PENDING),
            state_name=info.get("state_name", "pending"),
        )


@dataclass
class MachineRecord:
    """Persisted association between a machine and its remote resources."""

    machine_name: str
    instance_name: str
    key_pair_name: str
    private_key_path: str
    region: str
    availability_zone: str
    blueprint_id: str
    bundle_id: str
    ssh_port: int
    engine_port: int
    ip_address: str = ""
    ssh_user: str = ""
    managed: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MachineRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
