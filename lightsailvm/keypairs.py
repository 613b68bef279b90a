"""Lightsail key pair resource management."""

from pathlib import Path

from .errors import KeyImportRejected, ProviderError, PublicKeyUnreadable
from .providers import LightsailApi
from .types import KeyPairResource
from .utils import log


def find_key_pair(api: LightsailApi, name: str) -> str | None:
    """:return: Remote key pair name, or None if it does not exist"""
    try:
        return api.get_key_pair(name)
    except ProviderError as e:
        if e.not_found:
            return None
        raise


def delete_key_pair(api: LightsailApi, name: str) -> bool:
    """Delete a key pair, treating a missing one as already deleted.

    :return: True if something was deleted
    :raises ProviderError: On any failure other than not-found
    """
    try:
        api.delete_key_pair(name)
    except ProviderError as e:
        if e.not_found:
            return False
        raise
    log(f"Deleted key pair '{name}'")
    return True


def ensure_key_pair(api: LightsailApi, resource: KeyPairResource) -> None:
    """Make Lightsail hold exactly one key pair named ``resource.name``
    matching the local public key.

    A key pair left by an earlier failed attempt is replaced, since its
    private half may no longer exist locally.

    :raises PublicKeyUnreadable: Local public key missing or unreadable
    :raises KeyImportRejected: Lookup, delete, or import failed
    """
    try:
        if find_key_pair(api, resource.name) is not None:
            log(f"Replacing existing key pair '{resource.name}'")
            delete_key_pair(api, resource.name)
    except ProviderError as e:
        raise KeyImportRejected(str(e)) from e

    public_key = read_public_key(resource.public_key_path)

    try:
        api.import_key_pair(resource.name, public_key)
    except ProviderError as e:
        raise KeyImportRejected(str(e)) from e
    log(f"Imported key pair '{resource.name}'")


def read_public_key(path: Path) -> str:
    try:
        content = Path(path).read_text().strip()
    except OSError as e:
        raise PublicKeyUnreadable(f"Cannot read '{path}': {e}") from e
    if not content:
        raise PublicKeyUnreadable(f"Public key '{path}' is empty")
    return content
