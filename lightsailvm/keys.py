"""Local SSH key material for a machine."""

import os
import shutil
from pathlib import Path

import paramiko

from .errors import KeyGenerationFailed, KeyImportFailed
from .utils import log

KEY_FILENAME = "id_rsa"
KEY_BITS = 2048


def key_paths(machine_dir: Path) -> tuple[Path, Path]:
    """:return: (private_key_path, public_key_path) inside the machine directory"""
    private = machine_dir / KEY_FILENAME
    return private, private.with_name(f"{KEY_FILENAME}.pub")


def generate_key_pair(private_path: Path, public_path: Path, comment: str = "") -> None:
    """Write a new RSA key pair, private key readable by the owner only.

    On failure, files written so far are removed again.
    """
    try:
        private_path.parent.mkdir(parents=True, exist_ok=True)
        key = paramiko.RSAKey.generate(KEY_BITS)
        key.write_private_key_file(str(private_path))
        os.chmod(private_path, 0o600)
        line = f"{key.get_name()} {key.get_base64()}"
        if comment:
            line += f" {comment}"
        public_path.write_text(line + "\n")
    except (OSError, paramiko.SSHException, ValueError) as e:
        for path in (private_path, public_path):
            if path.is_file():
                path.unlink()
        raise KeyGenerationFailed(f"Could not write key to '{private_path}': {e}") from e


def import_key_pair(source: Path, private_path: Path, public_path: Path) -> None:
    """Copy a user key pair (``source`` and ``source.pub``) into the machine directory."""
    source_pub = source.with_name(source.name + ".pub")
    for path in (source, source_pub):
        if not path.is_file():
            raise KeyImportFailed(f"SSH key file not found: '{path}'")
    try:
        private_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, private_path)
        shutil.copyfile(source_pub, public_path)
        os.chmod(private_path, 0o600)
    except OSError as e:
        raise KeyImportFailed(f"Could not copy '{source}' to '{private_path}': {e}") from e


def provision_key_material(
    machine_name: str,
    machine_dir: Path,
    ssh_key_path: str | None = None,
    *,
    reuse: bool = False,
) -> tuple[Path, Path]:
    """Make a usable key pair available in the machine's directory.

    With ``ssh_key_path`` the user's key is copied in (always overwriting the
    previous copy). Otherwise a new key is generated. Existing generated keys
    are only kept when ``reuse`` is set, which the driver does when resuming
    an earlier attempt for the same machine; without it, stale keys are never
    silently overwritten or reused.

    :param machine_name: Used as the public key comment
    :param machine_dir: Directory namespaced by machine name
    :param ssh_key_path: Optional user private key path
    :param reuse: Keep generated keys left by an earlier attempt
    :return: (private_key_path, public_key_path)
    :raises KeyGenerationFailed: Generation failed or stale keys exist
    :raises KeyImportFailed: User key missing or copy failed
    """
    private_path, public_path = key_paths(machine_dir)

    if ssh_key_path:
        source = Path(ssh_key_path).expanduser()
        log(f"Importing SSH key '{source}'")
        import_key_pair(source, private_path, public_path)
        return private_path, public_path

    if private_path.exists() or public_path.exists():
        if reuse and private_path.exists() and public_path.exists():
            os.chmod(private_path, 0o600)
            log(f"Reusing SSH key '{private_path}'")
            return private_path, public_path
        raise KeyGenerationFailed(
            f"Key files already exist at '{private_path}' for an unknown attempt; "
            "remove the machine first"
        )

    log(f"Generating SSH key '{private_path}'")
    generate_key_pair(private_path, public_path, comment=machine_name)
    return private_path, public_path


def remove_key_material(machine_dir: Path) -> None:
    for path in key_paths(machine_dir):
        path.unlink(missing_ok=True)
