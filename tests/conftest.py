"""Shared fixtures: an in-memory Lightsail double, a fake clock, and live-test options."""

import socket
from uuid import uuid4

import pytest

from lightsailvm.errors import ErrorKind, ProviderError
from lightsailvm.store import MachineStore
from lightsailvm.types import STATE_PENDING, STATE_RUNNING, STATE_STOPPED, MachineConfig

MUTATING = {
    "import_key_pair",
    "delete_key_pair",
    "create_instance",
    "delete_instance",
    "start_instance",
    "stop_instance",
    "reboot_instance",
    "open_ports",
}

CODES = {
    ErrorKind.NOT_FOUND: "NotFoundException",
    ErrorKind.INVALID_INPUT: "InvalidInputException",
    ErrorKind.ACCESS_DENIED: "AccessDeniedException",
    ErrorKind.SERVICE: "ServiceException",
    ErrorKind.OTHER: "SomethingWentWrong",
}


def provider_error(kind: ErrorKind, operation: str, message: str = "boom") -> ProviderError:
    return ProviderError(kind, operation, CODES.get(kind, "Unknown"), message)


class FakeLightsail:
    """In-memory LightsailApi. Instances stay pending for ``pending_polls`` state reads."""

    def __init__(self, *, credentials: bool = True, pending_polls: int = 1):
        self.credentials = credentials
        self.pending_polls = pending_polls
        self.zones = [
            {"name": "ap-northeast-1a", "state": "available"},
            {"name": "ap-northeast-1c", "state": "available"},
            {"name": "ap-northeast-1d", "state": "unavailable"},
        ]
        self.bundles = [
            {"id": "nano_2_0", "active": True},
            {"id": "small_2_0", "active": True},
            {"id": "legacy_1_0", "active": False},
        ]
        self.blueprints = [
            {"id": "ubuntu_18_04", "active": True},
            {"id": "debian_10", "active": True},
            {"id": "ubuntu_14_04", "active": False},
        ]
        self.key_pairs: dict[str, str] = {}
        self.instances: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self._failures: dict[str, list] = {}
        self._next_ip = 10

    def fail(self, method: str, error: ProviderError, times: int | None = None) -> None:
        """Make ``method`` raise ``error``; forever when times is None."""
        self._failures[method] = [error, times]

    def clear_failures(self) -> None:
        self._failures.clear()

    def _call(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        failure = self._failures.get(method)
        if failure:
            error, times = failure
            if times is not None:
                failure[1] -= 1
                if failure[1] <= 0:
                    del self._failures[method]
            raise error

    def called(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def mutating_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in MUTATING]

    def _instance(self, operation: str, name: str) -> dict:
        if name not in self.instances:
            raise provider_error(ErrorKind.NOT_FOUND, operation, f"Instance {name} not found")
        return self.instances[name]

    def _new_ip(self) -> str:
        self._next_ip += 1
        return f"203.0.113.{self._next_ip}"

    def has_credentials(self) -> bool:
        self.calls.append(("has_credentials",))
        return self.credentials

    def get_zones(self):
        self._call("get_zones")
        return list(self.zones)

    def get_bundles(self):
        self._call("get_bundles")
        return list(self.bundles)

    def get_blueprints(self):
        self._call("get_blueprints")
        return list(self.blueprints)

    def get_key_pair(self, name):
        self._call("get_key_pair", name)
        if name not in self.key_pairs:
            raise provider_error(ErrorKind.NOT_FOUND, "get_key_pair", f"Key pair {name} not found")
        return name

    def import_key_pair(self, name, public_key):
        self._call("import_key_pair", name, public_key)
        if name in self.key_pairs:
            raise provider_error(ErrorKind.INVALID_INPUT, "import_key_pair", "already exists")
        self.key_pairs[name] = public_key

    def delete_key_pair(self, name):
        self._call("delete_key_pair", name)
        if name not in self.key_pairs:
            raise provider_error(ErrorKind.NOT_FOUND, "delete_key_pair", f"Key pair {name} not found")
        del self.key_pairs[name]

    def create_instance(self, name, zone, blueprint_id, bundle_id, key_pair_name):
        self._call("create_instance", name, zone, blueprint_id, bundle_id, key_pair_name)
        if name in self.instances:
            raise provider_error(
                ErrorKind.INVALID_INPUT, "create_instances", "Some names are already in use"
            )
        self.instances[name] = {
            "name": name,
            "zone": zone,
            "blueprint_id": blueprint_id,
            "bundle_id": bundle_id,
            "key_pair_name": key_pair_name,
            "ip": self._new_ip(),
            "username": "ubuntu",
            "state_code": STATE_PENDING,
            "polls_left": self.pending_polls,
            "ports": [],
        }

    def get_instance(self, name):
        self._call("get_instance", name)
        inst = self._instance("get_instance", name)
        return {
            "name": name,
            "ip": inst["ip"],
            "username": inst["username"],
            "state_code": inst["state_code"],
            "state_name": "running" if inst["state_code"] == STATE_RUNNING else "pending",
        }

    def get_instance_state(self, name):
        self._call("get_instance_state", name)
        inst = self._instance("get_instance_state", name)
        if inst["state_code"] == STATE_PENDING:
            if inst["polls_left"] > 0:
                inst["polls_left"] -= 1
            else:
                inst["state_code"] = STATE_RUNNING
        names = {STATE_PENDING: "pending", STATE_RUNNING: "running", STATE_STOPPED: "stopped"}
        return {"code": inst["state_code"], "name": names.get(inst["state_code"], "unknown")}

    def delete_instance(self, name):
        self._call("delete_instance", name)
        self._instance("delete_instance", name)
        del self.instances[name]

    def start_instance(self, name):
        self._call("start_instance", name)
        inst = self._instance("start_instance", name)
        inst["state_code"] = STATE_PENDING
        inst["polls_left"] = self.pending_polls
        inst["ip"] = self._new_ip()

    def stop_instance(self, name, force=False):
        self._call("stop_instance", name, force)
        self._instance("stop_instance", name)["state_code"] = STATE_STOPPED

    def reboot_instance(self, name):
        self._call("reboot_instance", name)
        self._instance("reboot_instance", name)

    def open_ports(self, name, from_port, to_port, protocol="tcp"):
        self._call("open_ports", name, from_port, to_port, protocol)
        self._instance("open_instance_public_ports", name)["ports"].append(
            (from_port, to_port, protocol)
        )


class FakeClock:
    """Monotonic clock that only advances when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake():
    return FakeLightsail()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def listening_port():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    yield server.getsockname()[1]
    server.close()


@pytest.fixture
def store(tmp_path):
    return MachineStore(tmp_path / "store")


@pytest.fixture
def config():
    return MachineConfig(
        name="web",
        region="ap-northeast-1",
        zone="a",
        blueprint_id="ubuntu_18_04",
        bundle_id="small_2_0",
        ready_timeout=60,
        poll_interval=5,
        probe_timeout=1,
    )


@pytest.fixture
def make_driver(fake, store, clock, config):
    from lightsailvm.driver import Driver

    def factory(cfg: MachineConfig | None = None, **kwargs):
        kwargs.setdefault("name_suffix", "abc123")
        return Driver(cfg or config, store, fake, clock=clock, sleep=clock.sleep, **kwargs)

    return factory


# ── Live tests ─────────────────────────────────────────────────────


def pytest_addoption(parser):
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run integration tests against real AWS Lightsail (creates billable resources)",
    )
    parser.addoption(
        "--region",
        default="ap-northeast-1",
        help="Lightsail region for integration tests (default: ap-northeast-1)",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--live"):
        return
    skip = pytest.mark.skip(reason="needs --live")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def live_driver(request, tmp_path_factory):
    """Create a real Lightsail machine, yield its driver, remove it on teardown."""
    from lightsailvm.config import load_config
    from lightsailvm.driver import Driver

    name = f"test-lightsailvm-{uuid4().hex[:8]}"
    config = load_config(name, region=request.config.getoption("--region"), bundle_id="nano_2_0")
    store = MachineStore(tmp_path_factory.mktemp("live-store"))
    driver = Driver(config, store)

    print(f"\n[INFO] Creating machine '{name}'...")
    driver.create()
    try:
        yield driver
    finally:
        if store.exists(name):
            driver.remove()
