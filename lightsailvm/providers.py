"""Lightsail API access: the interface the driver depends on and its boto3 adapter."""

from functools import wraps
from typing import Protocol

import boto3
import botocore.config
from botocore.exceptions import BotoCoreError, ClientError

from .config import CLIENT_MAX_ATTEMPTS
from .errors import ErrorKind, ProviderError
from .types import (
    CatalogEntry,
    Credentials,
    InstanceInfo,
    InstanceStateInfo,
    ZoneInfo,
)
from .utils import logger

NOT_FOUND_CODES = {"NotFoundException", "DoesNotExist"}
INVALID_INPUT_CODES = {"InvalidInputException", "ValidationException"}
ACCESS_DENIED_CODES = {
    "AccessDeniedException",
    "UnauthenticatedException",
    "AccountSetupInProgressException",
    "UnrecognizedClientException",
    "InvalidClientTokenId",
    "ExpiredToken",
    "ExpiredTokenException",
}
THROTTLED_CODES = {"ThrottlingException", "Throttling", "TooManyRequestsException"}
SERVICE_CODES = {"ServiceException", "OperationFailureException", "InternalFailure"}


class LightsailApi(Protocol):
    """Subset of Lightsail the driver needs.

    Every method raises ProviderError on failure.
    """

    def has_credentials(self) -> bool: ...

    def get_zones(self) -> list[ZoneInfo]: ...

    def get_bundles(self) -> list[CatalogEntry]: ...

    def get_blueprints(self) -> list[CatalogEntry]: ...

    def get_key_pair(self, name: str) -> str: ...

    def import_key_pair(self, name: str, public_key: str) -> None: ...

    def delete_key_pair(self, name: str) -> None: ...

    def create_instance(
        self, name: str, zone: str, blueprint_id: str, bundle_id: str, key_pair_name: str
    ) -> None: ...

    def get_instance(self, name: str) -> InstanceInfo: ...

    def get_instance_state(self, name: str) -> InstanceStateInfo: ...

    def delete_instance(self, name: str) -> None: ...

    def start_instance(self, name: str) -> None: ...

    def stop_instance(self, name: str, force: bool = False) -> None: ...

    def reboot_instance(self, name: str) -> None: ...

    def open_ports(self, name: str, from_port: int, to_port: int, protocol: str = "tcp") -> None: ...


def classify_error_code(code: str) -> ErrorKind:
    if code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if code in INVALID_INPUT_CODES:
        return ErrorKind.INVALID_INPUT
    if code in ACCESS_DENIED_CODES:
        return ErrorKind.ACCESS_DENIED
    if code in THROTTLED_CODES:
        return ErrorKind.THROTTLED
    if code in SERVICE_CODES:
        return ErrorKind.SERVICE
    return ErrorKind.OTHER


def translate_client_error(operation: str, exc: Exception) -> ProviderError:
    """Map a botocore exception to a ProviderError.

    This is the only place raw AWS error codes are inspected.

    :param operation: Lightsail operation that failed
    :param exc: ClientError or BotoCoreError raised by boto3
    """
    if isinstance(exc, ClientError):
        err = exc.response.get("Error", {})
        code = err.get("Code", "Unknown")
        message = err.get("Message", str(exc))
        return ProviderError(classify_error_code(code), operation, code, message)
    return ProviderError(ErrorKind.OTHER, operation, type(exc).__name__, str(exc))


def _translated(operation: str):
    """Decorator: re-raise botocore errors from a call as ProviderError."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (ClientError, BotoCoreError) as e:
                perr = translate_client_error(operation, e)
                logger.debug(f"Lightsail {operation} failed: {perr}")
                raise perr from e

        return wrapper

    return decorator


def make_lightsail_client(region: str, credentials: Credentials | None = None):
    """Build a boto3 Lightsail client with the bounded retry policy.

    :param region: Lightsail region, e.g. ap-northeast-1
    :param credentials: Explicit credentials (default: boto3 credential chain)
    :return: (session, client)
    """
    credentials = credentials or Credentials()
    session = boto3.Session(region_name=region, **credentials.session_kwargs())
    client = session.client(
        "lightsail",
        config=botocore.config.Config(
            retries={"total_max_attempts": CLIENT_MAX_ATTEMPTS, "mode": "standard"}
        ),
    )
    return session, client


class BotoLightsail:
    """LightsailApi backed by a boto3 client.

    :param client: boto3 Lightsail client
    :param session: boto3 Session used to resolve credentials (optional)
    """

    def __init__(self, client, session=None):
        self.client = client
        self.session = session

    @classmethod
    def connect(cls, region: str, credentials: Credentials | None = None) -> "BotoLightsail":
        session, client = make_lightsail_client(region, credentials)
        return cls(client, session)

    def has_credentials(self) -> bool:
        if self.session is None:
            return True
        try:
            return self.session.get_credentials() is not None
        except BotoCoreError as e:
            logger.debug(f"Credential resolution failed: {e}")
            return False

    def _paged(self, method, key: str, **kwargs) -> list[dict]:
        items = []
        token = None
        while True:
            if token:
                kwargs["pageToken"] = token
            response = method(**kwargs)
            items.extend(response.get(key, []))
            token = response.get("nextPageToken")
            if not token:
                return items

    @_translated("get_regions")
    def get_zones(self) -> list[ZoneInfo]:
        response = self.client.get_regions(includeAvailabilityZones=True)
        return [
            {"name": zone.get("zoneName", ""), "state": zone.get("state", "")}
            for region in response.get("regions", [])
            for zone in region.get("availabilityZones", [])
        ]

    @_translated("get_bundles")
    def get_bundles(self) -> list[CatalogEntry]:
        bundles = self._paged(self.client.get_bundles, "bundles", includeInactive=False)
        return [
            {"id": b.get("bundleId", ""), "active": bool(b.get("isActive"))}
            for b in bundles
        ]

    @_translated("get_blueprints")
    def get_blueprints(self) -> list[CatalogEntry]:
        blueprints = self._paged(
            self.client.get_blueprints, "blueprints", includeInactive=False
        )
        return [
            {"id": b.get("blueprintId", ""), "active": bool(b.get("isActive"))}
            for b in blueprints
        ]

    @_translated("get_key_pair")
    def get_key_pair(self, name: str) -> str:
        response = self.client.get_key_pair(keyPairName=name)
        return response["keyPair"]["name"]

    @_translated("import_key_pair")
    def import_key_pair(self, name: str, public_key: str) -> None:
        # publicKeyBase64 takes the OpenSSH public key line as-is
        self.client.import_key_pair(keyPairName=name, publicKeyBase64=public_key.strip())

    @_translated("delete_key_pair")
    def delete_key_pair(self, name: str) -> None:
        self.client.delete_key_pair(keyPairName=name)

    @_translated("create_instances")
    def create_instance(
        self, name: str, zone: str, blueprint_id: str, bundle_id: str, key_pair_name: str
    ) -> None:
        self.client.create_instances(
            instanceNames=[name],
            availabilityZone=zone,
            blueprintId=blueprint_id,
            bundleId=bundle_id,
            keyPairName=key_pair_name,
        )

    @_translated("get_instance")
    def get_instance(self, name: str) -> InstanceInfo:
        instance = self.client.get_instance(instanceName=name)["instance"]
        state = instance.get("state", {})
        return {
            "name": instance.get("name", name),
            "ip": instance.get("publicIpAddress", ""),
            "username": instance.get("username", ""),
            "state_code": state.get("code", 0),
            "state_name": state.get("name", ""),
        }

    @_translated("get_instance_state")
    def get_instance_state(self, name: str) -> InstanceStateInfo:
        state = self.client.get_instance_state(instanceName=name)["state"]
        return {"code": state.get("code", 0), "name": state.get("name", "")}

    @_translated("delete_instance")
    def delete_instance(self, name: str) -> None:
        self.client.delete_instance(instanceName=name)

    @_translated("start_instance")
    def start_instance(self, name: str) -> None:
        self.client.start_instance(instanceName=name)

    @_translated("stop_instance")
    def stop_instance(self, name: str, force: bool = False) -> None:
        self.client.stop_instance(instanceName=name, force=force)

    @_translated("reboot_instance")
    def reboot_instance(self, name: str) -> None:
        self.client.reboot_instance(instanceName=name)

    @_translated("open_instance_public_ports")
    def open_ports(self, name: str, from_port: int, to_port: int, protocol: str = "tcp") -> None:
        self.client.open_instance_public_ports(
            instanceName=name,
            portInfo={"fromPort": from_port, "toPort": to_port, "protocol": protocol},
        )
