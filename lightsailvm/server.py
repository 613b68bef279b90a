"""Network-facing helpers: reachability probe, engine URL, and port exposure."""

import socket

from .errors import PortExposeFailed, ProviderError
from .providers import LightsailApi
from .types import MachineState
from .utils import log, logger

PROBE_TIMEOUT = 10


def probe_state(address: str, port: int, timeout: float = PROBE_TIMEOUT) -> MachineState:
    """Classify a machine as reachable or not with a single TCP connect.

    Refused, unreachable, and timed-out connections all count as Stopped;
    this is a liveness signal and never asks the provider.

    :param address: Host name or IP address
    :param port: TCP port, usually the SSH port
    :param timeout: Connect timeout in seconds
    :return: "Running" or "Stopped"
    """
    if not address:
        return "Stopped"
    try:
        with socket.create_connection((address, port), timeout=timeout):
            return "Running"
    except OSError as e:
        logger.debug(f"Probe of {address}:{port} failed: {e}")
        return "Stopped"


def resolve_url(address: str, port: int) -> str:
    """Build the engine URL for an address and port.

    :raises ValueError: If the address is empty
    """
    if not address:
        raise ValueError("Machine has no IP address yet")
    host = f"[{address}]" if ":" in address else address
    return f"tcp://{host}:{port}"


def expose_ports(
    api: LightsailApi,
    instance_name: str,
    engine_port: int,
    extra_ports: tuple[tuple[int, int], ...] = (),
) -> None:
    """Open inbound tcp port ranges on the instance firewall.

    :raises PortExposeFailed: On any provider error; not retried
    """
    for from_port, to_port in [(engine_port, engine_port), *extra_ports]:
        label = str(from_port) if from_port == to_port else f"{from_port}-{to_port}"
        try:
            api.open_ports(instance_name, from_port, to_port, "tcp")
        except ProviderError as e:
            raise PortExposeFailed(f"Could not open tcp {label} on '{instance_name}': {e}") from e
        log(f"Opened tcp {label} on '{instance_name}'")
