"""Pre-flight checks run before any call that allocates billable resources."""

from .errors import (
    ImageUnavailable,
    MissingCredentials,
    ProviderCallFailed,
    ProviderError,
    SizeUnavailable,
    ZoneUnavailable,
)
from .providers import LightsailApi
from .types import MachineConfig
from .utils import log


def validate_config(config: MachineConfig, api: LightsailApi) -> None:
    """Check a machine configuration against the Lightsail catalogs.

    Only read-only queries are issued, so this is safe to call repeatedly.
    Checks run in order: credentials, availability zone, bundle, blueprint.

    :param config: Machine configuration to check
    :param api: Lightsail access
    :raises MissingCredentials: No credentials could be resolved
    :raises ZoneUnavailable: region+zone is not an available zone
    :raises SizeUnavailable: bundle is not active
    :raises ImageUnavailable: blueprint is not active
    :raises ProviderCallFailed: A catalog query failed
    """
    if not api.has_credentials():
        raise MissingCredentials(
            "No AWS credentials found. Pass --access-key/--secret-key, "
            "set LIGHTSAIL_ACCESS_KEY/LIGHTSAIL_SECRET_KEY or configure an AWS profile"
        )

    zone = config.availability_zone
    try:
        zones = api.get_zones()
        if not any(z["name"] == zone and z["state"] == "available" for z in zones):
            available = sorted(z["name"] for z in zones if z["state"] == "available")
            raise ZoneUnavailable(
                f"'{zone}' is not available (available: {', '.join(available) or 'none'})"
            )

        bundles = api.get_bundles()
        if not any(b["id"] == config.bundle_id and b["active"] for b in bundles):
            raise SizeUnavailable(f"Bundle '{config.bundle_id}' is not active")

        blueprints = api.get_blueprints()
        if not any(b["id"] == config.blueprint_id and b["active"] for b in blueprints):
            raise ImageUnavailable(f"Blueprint '{config.blueprint_id}' is not active")
    except ProviderError as e:
        raise ProviderCallFailed("validate", str(e)) from e

    log(
        f"Config OK: zone='{zone}' bundle='{config.bundle_id}' "
        f"blueprint='{config.blueprint_id}'"
    )
