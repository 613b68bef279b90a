import socket
import time

import pytest

from conftest import provider_error
from lightsailvm.errors import ErrorKind, PortExposeFailed
from lightsailvm.server import expose_ports, probe_state, resolve_url


@pytest.fixture
def closed_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def test_probe_listening_port_is_running(listening_port):
    assert probe_state("127.0.0.1", listening_port, timeout=1) == "Running"


def test_probe_closed_port_is_stopped_within_timeout(closed_port):
    start = time.monotonic()
    assert probe_state("127.0.0.1", closed_port, timeout=1) == "Stopped"
    assert time.monotonic() - start < 2


def test_probe_without_address_is_stopped():
    assert probe_state("", 22) == "Stopped"


def test_resolve_url():
    assert resolve_url("203.0.113.10", 2376) == "tcp://203.0.113.10:2376"
    assert resolve_url("2001:db8::1", 2376) == "tcp://[2001:db8::1]:2376"
    with pytest.raises(ValueError):
        resolve_url("", 2376)


def test_expose_engine_port_and_extra_ranges(fake):
    fake.instances["web"] = {"ports": []}
    expose_ports(fake, "web", 2376, ((8000, 9000),))
    assert fake.instances["web"]["ports"] == [(2376, 2376, "tcp"), (8000, 9000, "tcp")]


def test_expose_failure_is_not_retried(fake):
    fake.fail("open_ports", provider_error(ErrorKind.SERVICE, "open_instance_public_ports"))
    with pytest.raises(PortExposeFailed) as exc_info:
        expose_ports(fake, "web", 2376, ((80, 80),))
    assert "tcp 2376" in str(exc_info.value)
    assert len(fake.called("open_ports")) == 1
