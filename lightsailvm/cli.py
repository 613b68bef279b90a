#!/usr/bin/env python3
"""Provision Docker hosts on AWS Lightsail.

Credentials come from flags, LIGHTSAIL_ACCESS_KEY/LIGHTSAIL_SECRET_KEY, or the
usual AWS credential chain.

Usage: uv run lightsailvm <command> <name> [options]

Examples:
    uv run lightsailvm create web --region ap-northeast-1 --bundle-id small_2_0
    uv run lightsailvm status web
    uv run lightsailvm url web
    uv run lightsailvm rm web
"""

import os

import cyclopts
from rich import print

from .config import load_config, load_credentials, store_path
from .driver import Driver
from .errors import LightsailVMError
from .store import MachineStore
from .utils import error, log, setup_logging

app = cyclopts.App(
    name="lightsailvm", help="Provision Docker hosts on AWS Lightsail", sort_key=None
)


def _run(action):
    """Call action, turning lightsailvm errors into a logged exit."""
    try:
        return action()
    except LightsailVMError as e:
        error(str(e))


def _machine(
    name: str,
    store: str | None,
    access_key: str | None,
    secret_key: str | None,
    session_token: str | None,
    profile: str | None,
) -> Driver:
    credentials = load_credentials(access_key, secret_key, session_token, profile)
    return _run(
        lambda: Driver.for_machine(name, MachineStore(store_path(store)), credentials=credentials)
    )


@app.command(name="validate")
def validate_command(
    name: str,
    *,
    region: str | None = None,
    zone: str | None = None,
    blueprint_id: str | None = None,
    bundle_id: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Check credentials, zone, bundle, and blueprint without creating anything.

    :param region: Lightsail region (default: LIGHTSAIL_REGION or ap-northeast-1)
    :param zone: Availability zone suffix (default: a)
    :param blueprint_id: OS image (default: ubuntu_18_04)
    :param bundle_id: Instance size (default: small_2_0)
    """
    credentials = load_credentials(access_key, secret_key, session_token, profile)
    config = _run(
        lambda: load_config(
            name,
            credentials=credentials,
            region=region,
            zone=zone,
            blueprint_id=blueprint_id,
            bundle_id=bundle_id,
        )
    )
    driver = Driver(config, MachineStore(store_path()))
    _run(driver.validate)
    print(f"[green]OK[/green] {config.availability_zone} {config.bundle_id} {config.blueprint_id}")


@app.command(name="create")
def create_command(
    name: str,
    *,
    region: str | None = None,
    zone: str | None = None,
    blueprint_id: str | None = None,
    bundle_id: str | None = None,
    ssh_key: str | None = None,
    ssh_user: str | None = None,
    ssh_port: int | None = None,
    engine_port: int | None = None,
    open_port: list[str] | None = None,
    address: str | None = None,
    timeout: float | None = None,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Create a Lightsail instance and wait until it is running.

    :param region: Lightsail region (default: LIGHTSAIL_REGION or ap-northeast-1)
    :param zone: Availability zone suffix (default: a)
    :param blueprint_id: OS image (default: ubuntu_18_04)
    :param bundle_id: Instance size (default: small_2_0)
    :param ssh_key: Existing private key to use instead of generating one
    :param ssh_user: SSH user override (default: reported by Lightsail)
    :param ssh_port: SSH port (default: 22)
    :param engine_port: Docker engine port to open (default: 2376)
    :param open_port: Extra tcp port or range to open, e.g. 80 or 30000-32767
    :param address: Use an existing host at this address; nothing is created
    :param timeout: Seconds to wait for the instance to be running (default: 300)
    :param store: State directory (default: LIGHTSAIL_STORE_PATH or ~/.lightsailvm)
    """
    credentials = load_credentials(access_key, secret_key, session_token, profile)
    config = _run(
        lambda: load_config(
            name,
            credentials=credentials,
            region=region,
            zone=zone,
            blueprint_id=blueprint_id,
            bundle_id=bundle_id,
            ssh_key_path=ssh_key,
            ssh_user=ssh_user,
            ssh_port=ssh_port,
            engine_port=engine_port,
            extra_ports=open_port,
            existing_address=address,
            ready_timeout=timeout,
        )
    )
    log(
        f"Creating machine '{name}' in '{config.availability_zone}' "
        f"('{config.bundle_id}', '{config.blueprint_id}')..."
    )
    driver = Driver(config, MachineStore(store_path(store)))
    instance = _run(driver.create)

    log("Machine ready!")
    print(f"  IP: {instance.public_ip}")
    print(f"  SSH: ssh -i {driver.get_ssh_key_path()} {driver.get_ssh_username()}@{instance.public_ip}")
    print(f"  URL: {_run(driver.get_url)}")


@app.command(name="rm")
def remove_command(
    name: str,
    *,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Delete the instance, its key pair, and local state."""
    machine_store = MachineStore(store_path(store))
    if machine_store.exists(name):
        driver = _machine(name, store, access_key, secret_key, session_token, profile)
    else:
        # leftover key files from an interrupted create, or MachineNotFound
        credentials = load_credentials(access_key, secret_key, session_token, profile)
        config = _run(lambda: load_config(name, credentials=credentials))
        driver = Driver(config, machine_store)
    _run(driver.remove)


@app.command(name="start")
def start_command(
    name: str,
    *,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Start a stopped instance and wait until it is running."""
    driver = _machine(name, store, access_key, secret_key, session_token, profile)
    _run(driver.start)
    log(f"Started '{name}' ({driver.get_ip()})")


@app.command(name="stop")
def stop_command(
    name: str,
    *,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Stop the instance without waiting."""
    driver = _machine(name, store, access_key, secret_key, session_token, profile)
    _run(driver.stop)
    log(f"Stopping '{name}'")


@app.command(name="kill")
def kill_command(
    name: str,
    *,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Force-stop the instance."""
    driver = _machine(name, store, access_key, secret_key, session_token, profile)
    _run(driver.kill)
    log(f"Killed '{name}'")


@app.command(name="restart")
def restart_command(
    name: str,
    *,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Reboot the instance."""
    driver = _machine(name, store, access_key, secret_key, session_token, profile)
    _run(driver.restart)
    log(f"Restarting '{name}'")


@app.command(name="status")
def status_command(
    name: str,
    *,
    provider: bool = False,
    store: str | None = None,
    access_key: str | None = None,
    secret_key: str | None = None,
    session_token: str | None = None,
    profile: str | None = None,
):
    """Show whether the machine is reachable.

    :param provider: Ask Lightsail for the instance state instead of probing SSH
    """
    driver = _machine(name, store, access_key, secret_key, session_token, profile)
    state = _run(driver.provider_state if provider else driver.probe_state)
    print(state)


@app.command(name="url")
def url_command(name: str, *, store: str | None = None):
    """Print the Docker engine URL."""
    driver = _machine(name, store, None, None, None, None)
    print(_run(driver.get_url))


@app.command(name="ip")
def ip_command(name: str, *, store: str | None = None):
    """Print the machine's public IP address."""
    driver = _machine(name, store, None, None, None, None)
    print(_run(driver.get_ip))


@app.command(name="ls")
def list_command(*, store: str | None = None):
    """List machines in the local store."""
    machine_store = MachineStore(store_path(store))
    for name in machine_store.list_names():
        record = machine_store.load(name)
        where = record.availability_zone if record.managed else "external"
        print(f"{name:<20} {record.ip_address or 'N/A':<16} {where}")


def main():
    setup_logging(os.getenv("LIGHTSAIL_LOG_LEVEL", "INFO"))
    app()


if __name__ == "__main__":
    main()
