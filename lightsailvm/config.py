"""Configuration defaults and environment loading."""

import configparser
import os
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError
from .types import (
    DEFAULT_BLUEPRINT_ID,
    DEFAULT_BUNDLE_ID,
    DEFAULT_ENGINE_PORT,
    DEFAULT_REGION,
    DEFAULT_SSH_PORT,
    DEFAULT_ZONE,
    Credentials,
    MachineConfig,
)
from .utils import log

DEFAULT_STORE_PATH = "~/.lightsailvm"

# Total attempts (first call included) the boto3 client makes on transient errors
CLIENT_MAX_ATTEMPTS = 3

ENV_VARS = {
    "region": "LIGHTSAIL_REGION",
    "zone": "LIGHTSAIL_AVAILABILITY_ZONE",
    "blueprint_id": "LIGHTSAIL_BLUEPRINT_ID",
    "bundle_id": "LIGHTSAIL_BUNDLE_ID",
    "ssh_key_path": "LIGHTSAIL_SSH_KEY",
    "engine_port": "LIGHTSAIL_DOCKER_PORT",
    "ssh_port": "LIGHTSAIL_SSH_PORT",
    "ssh_user": "LIGHTSAIL_SSH_USER",
}

INT_FIELDS = ("engine_port", "ssh_port")


def available_aws_profiles() -> set[str]:
    """:return: Profile names found in ~/.aws/credentials and ~/.aws/config"""
    profiles = set()
    for path in ("~/.aws/credentials", "~/.aws/config"):
        path = os.path.expanduser(path)
        if os.path.exists(path):
            cfg = configparser.ConfigParser()
            cfg.read(path)
            for section in cfg.sections():
                if section.startswith("profile "):
                    profiles.add(section[8:])
                else:
                    profiles.add(section)
    return profiles


def load_credentials(
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
) -> Credentials:
    """Resolve credential fields from arguments, then the environment.

    Does not check that the credentials work; the validator does that.
    """
    load_dotenv()
    access_key = access_key or os.getenv("LIGHTSAIL_ACCESS_KEY")
    secret_key = secret_key or os.getenv("LIGHTSAIL_SECRET_KEY")
    session_token = session_token or os.getenv("LIGHTSAIL_SESSION_TOKEN")

    profile = profile or os.getenv("AWS_PROFILE")
    if profile and profile not in available_aws_profiles():
        log(f"AWS profile '{profile}' not found, using default credential chain...")
        profile = None

    return Credentials(
        access_key=access_key,
        secret_key=secret_key,
        session_token=session_token,
        profile=profile,
    )


def parse_port_range(value: str) -> tuple[int, int]:
    """Parse ``"80"`` or ``"30000-32767"`` into a (from, to) tuple."""
    start, _, end = value.partition("-")
    try:
        lo = int(start)
        hi = int(end) if end else lo
    except ValueError:
        raise ConfigError(f"Invalid port range: '{value}'") from None
    if not (0 <= lo <= hi <= 65535):
        raise ConfigError(f"Invalid port range: '{value}'")
    return lo, hi


def load_config(name: str, *, credentials: Credentials | None = None, **overrides) -> MachineConfig:
    """Build a MachineConfig from defaults, environment, and overrides.

    Overrides set to None are ignored so CLI flags can be passed through
    unconditionally.

    :param name: Machine name
    :param credentials: Explicit credentials (default: load_credentials())
    :return: Immutable machine configuration
    """
    load_dotenv()
    values = {}
    for key, env_name in ENV_VARS.items():
        env_value = os.getenv(env_name)
        if env_value:
            values[key] = env_value
    values.update({k: v for k, v in overrides.items() if v is not None})

    for key in INT_FIELDS:
        if key in values:
            try:
                values[key] = int(values[key])
            except (TypeError, ValueError):
                raise ConfigError(f"Invalid {key}: '{values[key]}'") from None

    if "extra_ports" in values:
        values["extra_ports"] = tuple(
            parse_port_range(p) if isinstance(p, str) else tuple(p)
            for p in values["extra_ports"]
        )

    if not name:
        raise ConfigError("Machine name is required")

    return MachineConfig(
        name=name,
        credentials=credentials or load_credentials(),
        **values,
    )


def store_path(path: str | None = None) -> Path:
    """:return: Root directory holding per-machine state"""
    load_dotenv()
    raw = path or os.getenv("LIGHTSAIL_STORE_PATH") or DEFAULT_STORE_PATH
    return Path(raw).expanduser()
