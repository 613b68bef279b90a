"""Lifecycle of one Lightsail machine: create, teardown, and power operations."""

import time
from pathlib import Path
from typing import Callable

from .errors import (
    ConfigError,
    ErrorKind,
    InstanceCreateFailed,
    InstanceInfoUnavailable,
    InstanceNotReadyTimeout,
    OperationError,
    ProviderCallFailed,
    ProviderError,
    TeardownFailed,
    UnsupportedOperation,
)
from .keypairs import delete_key_pair, ensure_key_pair
from .keys import provision_key_material, remove_key_material
from .providers import BotoLightsail, LightsailApi
from .server import expose_ports, probe_state, resolve_url
from .store import MachineStore
from .types import (
    STATE_PENDING,
    STATE_RUNNING,
    STATE_SHUTTING_DOWN,
    STATE_STOPPED,
    STATE_STOPPING,
    STATE_TERMINATED,
    Credentials,
    InstanceResource,
    KeyPairResource,
    MachineConfig,
    MachineRecord,
    MachineState,
)
from .utils import get_ssh_user, log, resource_base_name, wait_until, warn
from .validate import validate_config

PROVIDER_STATES: dict[int, MachineState] = {
    STATE_PENDING: "Starting",
    STATE_RUNNING: "Running",
    STATE_SHUTTING_DOWN: "Stopping",
    STATE_TERMINATED: "NotFound",
    STATE_STOPPING: "Stopping",
    STATE_STOPPED: "Stopped",
}


def delete_instance(api: LightsailApi, name: str) -> bool:
    """Delete an instance, treating a missing one as already deleted.

    :return: True if something was deleted
    :raises ProviderError: On any failure other than not-found
    """
    try:
        api.delete_instance(name)
    except ProviderError as e:
        if e.not_found:
            return False
        raise
    log(f"Deleted instance '{name}'")
    return True


def config_from_record(record: MachineRecord, credentials: Credentials | None = None) -> MachineConfig:
    """Rebuild the configuration a recorded machine was created with."""
    return MachineConfig(
        name=record.machine_name,
        region=record.region,
        zone=record.availability_zone[len(record.region):],
        blueprint_id=record.blueprint_id,
        bundle_id=record.bundle_id,
        engine_port=record.engine_port,
        ssh_port=record.ssh_port,
        ssh_user=record.ssh_user or None,
        existing_address=None if record.managed else record.ip_address,
        credentials=credentials or Credentials(),
    )


class Driver:
    """Orchestrates one machine's Lightsail resources.

    The Lightsail API is injected; when omitted a boto3-backed client is
    built on first use from the config's region and credentials.

    :param config: Machine configuration
    :param store: Local machine state
    :param api: Lightsail access (default: BotoLightsail)
    :param name_suffix: Fixed disambiguator for new resource names
    :param clock: Monotonic clock used by the readiness poll
    :param sleep: Sleep function used by the readiness poll
    """

    def __init__(
        self,
        config: MachineConfig,
        store: MachineStore,
        api: LightsailApi | None = None,
        *,
        name_suffix: str | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.store = store
        self._api = api
        self.name_suffix = name_suffix
        self.clock = clock
        self.sleep = sleep

    @classmethod
    def for_machine(
        cls,
        name: str,
        store: MachineStore,
        api: LightsailApi | None = None,
        credentials: Credentials | None = None,
        **kwargs,
    ) -> "Driver":
        """Driver for a machine that already has a local record."""
        record = store.load(name)
        return cls(config_from_record(record, credentials), store, api, **kwargs)

    @property
    def api(self) -> LightsailApi:
        if self._api is None:
            self._api = BotoLightsail.connect(self.config.region, self.config.credentials)
        return self._api

    @property
    def record(self) -> MachineRecord:
        return self.store.load(self.config.name)

    # ── Create ─────────────────────────────────────────────────────

    def validate(self) -> None:
        if self.config.managed:
            validate_config(self.config, self.api)

    def create(self) -> InstanceResource:
        """Provision the machine and wait until it is running.

        Resource names are persisted before the first remote mutation, so a
        retry after a failed attempt targets the same key pair and instance.
        Any failure from the create-instance call onward triggers teardown;
        if teardown also fails, the original error carries it as
        ``cleanup_error`` and the record is kept for a later ``remove``.
        A machine that already finished a create is never torn down.

        :return: The running instance
        :raises ConfigError: The recorded machine has different settings
        """
        config = self.config
        if not config.managed:
            return self._adopt_existing_address()

        record = self.store.find(config.name)
        resuming = record is not None and record.managed
        if resuming:
            self._check_record_matches(record)

        validate_config(config, self.api)

        if resuming:
            log(f"Resuming earlier attempt for '{config.name}' ('{record.instance_name}')")
        else:
            record = self._new_record()
        finished = resuming and bool(record.ip_address)

        private_path, public_path = provision_key_material(
            config.name,
            self.store.machine_dir(config.name),
            config.ssh_key_path,
            reuse=resuming,
        )
        record.private_key_path = str(private_path)
        self.store.save(record)

        key_pair = KeyPairResource(record.key_pair_name, private_path, public_path)
        ensure_key_pair(self.api, key_pair)

        try:
            instance = self._launch(record)
        except OperationError as e:
            if finished:
                warn(f"Create failed ({e}), keeping existing machine '{config.name}'")
                raise
            self._cleanup_after_failure(record, e)
            raise

        record.ip_address = instance.public_ip
        record.ssh_user = config.ssh_user or instance.username
        self.store.save(record)
        log(f"Machine '{config.name}' running at '{instance.public_ip}'")
        return instance

    def _check_record_matches(self, record: MachineRecord) -> None:
        config = self.config
        changed = [
            f"{label} '{recorded}', not '{wanted}'"
            for label, recorded, wanted in (
                ("availability zone", record.availability_zone, config.availability_zone),
                ("blueprint", record.blueprint_id, config.blueprint_id),
                ("bundle", record.bundle_id, config.bundle_id),
            )
            if recorded != wanted
        ]
        if changed:
            raise ConfigError(
                f"Machine '{record.machine_name}' was created with {', '.join(changed)}; "
                "remove it first or create it with the recorded settings"
            )

    def _new_record(self) -> MachineRecord:
        config = self.config
        base = resource_base_name(
            config.name, config.bundle_id, config.blueprint_id, self.name_suffix
        )
        return MachineRecord(
            machine_name=config.name,
            instance_name=base,
            key_pair_name=base,
            private_key_path="",
            region=config.region,
            availability_zone=config.availability_zone,
            blueprint_id=config.blueprint_id,
            bundle_id=config.bundle_id,
            ssh_port=config.ssh_port,
            engine_port=config.engine_port,
        )

    def _adopt_existing_address(self) -> InstanceResource:
        config = self.config
        user = config.ssh_user or get_ssh_user(config.blueprint_id)
        private_key_path = str(Path(config.ssh_key_path).expanduser()) if config.ssh_key_path else ""
        record = MachineRecord(
            machine_name=config.name,
            instance_name="",
            key_pair_name="",
            private_key_path=private_key_path,
            region=config.region,
            availability_zone=config.availability_zone,
            blueprint_id=config.blueprint_id,
            bundle_id=config.bundle_id,
            ssh_port=config.ssh_port,
            engine_port=config.engine_port,
            ip_address=config.existing_address,
            ssh_user=user,
            managed=False,
        )
        self.store.save(record)
        log(f"Using existing address '{config.existing_address}' for '{config.name}'")
        return InstanceResource(
            name=config.name,
            public_ip=config.existing_address,
            username=user,
            state_code=STATE_RUNNING,
            state_name="running",
        )

    def _launch(self, record: MachineRecord) -> InstanceResource:
        self._create_instance(record)
        self._wait_until_running(record.instance_name)
        instance = self._fetch_instance(record.instance_name)
        expose_ports(
            self.api, record.instance_name, self.config.engine_port, self.config.extra_ports
        )
        return instance

    def _create_instance(self, record: MachineRecord) -> None:
        config = self.config
        log(
            f"Creating instance '{record.instance_name}' in '{config.availability_zone}' "
            f"('{config.bundle_id}', '{config.blueprint_id}')..."
        )
        try:
            self.api.create_instance(
                record.instance_name,
                config.availability_zone,
                config.blueprint_id,
                config.bundle_id,
                record.key_pair_name,
            )
        except ProviderError as e:
            if e.kind is not ErrorKind.INVALID_INPUT:
                raise InstanceCreateFailed(str(e)) from e
            self._check_existing_instance(record.instance_name, e)

    def _check_existing_instance(self, name: str, create_error: ProviderError) -> None:
        """Accept an instance left by an earlier attempt as our own."""
        try:
            existing = self.api.get_instance(name)
        except ProviderError as e:
            if e.not_found:
                raise InstanceCreateFailed(str(create_error)) from create_error
            raise InstanceCreateFailed(str(e)) from e
        if existing.get("state_code") in (STATE_SHUTTING_DOWN, STATE_TERMINATED):
            raise InstanceCreateFailed(
                f"Instance '{name}' exists but is being deleted ({existing.get('state_name')})"
            ) from create_error
        log(f"Instance '{name}' already exists, reusing it")
        if existing.get("state_code") == STATE_STOPPED:
            log(f"Starting stopped instance '{name}'")
            try:
                self.api.start_instance(name)
            except ProviderError as e:
                raise InstanceCreateFailed(str(e)) from e

    def _wait_until_running(self, name: str) -> None:
        config = self.config
        log(f"Waiting for instance '{name}' to be running...")

        def is_running() -> bool:
            try:
                state = self.api.get_instance_state(name)
            except ProviderError as e:
                if e.not_found:
                    return False
                raise ProviderCallFailed("wait for instance", str(e)) from e
            return state["code"] == STATE_RUNNING

        ready = wait_until(
            is_running,
            timeout=config.ready_timeout,
            interval=config.poll_interval,
            clock=self.clock,
            sleep=self.sleep,
        )
        if not ready:
            raise InstanceNotReadyTimeout(
                f"Instance '{name}' not running after {config.ready_timeout:g}s"
            )

    def _fetch_instance(self, name: str) -> InstanceResource:
        try:
            info = self.api.get_instance(name)
        except ProviderError as e:
            raise InstanceInfoUnavailable(str(e)) from e
        instance = InstanceResource.from_info(info)
        if not instance.public_ip:
            raise InstanceInfoUnavailable(f"Instance '{name}' has no public IP address")
        return instance

    def _cleanup_after_failure(self, record: MachineRecord, error: OperationError) -> None:
        warn(f"Create failed ({error}), cleaning up '{record.instance_name}'...")
        try:
            self._teardown(record)
        except TeardownFailed as cleanup_error:
            warn(f"Cleanup failed, resources may have leaked: {cleanup_error}")
            error.cleanup_error = cleanup_error
            return
        self._forget()

    # ── Teardown ───────────────────────────────────────────────────

    def _teardown(self, record: MachineRecord) -> None:
        """Delete the instance, then the key pair.

        Both deletions are always attempted; missing resources are fine.

        :raises TeardownFailed: With the first hard error, after both steps
        """
        failures: list[ProviderError] = []
        for label, delete, name in (
            ("instance", delete_instance, record.instance_name),
            ("key pair", delete_key_pair, record.key_pair_name),
        ):
            try:
                if not delete(self.api, name):
                    log(f"No {label} '{name}' to delete")
            except ProviderError as e:
                warn(f"Could not delete {label} '{name}': {e}")
                failures.append(e)
        if failures:
            raise TeardownFailed(str(failures[0])) from failures[0]

    def _forget(self) -> None:
        remove_key_material(self.store.machine_dir(self.config.name))
        self.store.delete(self.config.name)

    def remove(self) -> None:
        """Delete the machine's remote resources and local state.

        Resources that are already gone are not an error. Local state is
        kept when teardown fails so the removal can be retried. Key files
        left without a record by an interrupted create are cleared too.

        :raises TeardownFailed: If a deletion failed for another reason
        """
        name = self.config.name
        if not self.store.exists(name) and self.store.machine_dir(name).exists():
            log(f"No record for '{name}', removing leftover local files")
            self._forget()
            return
        record = self.record
        if record.managed:
            self._teardown(record)
        else:
            log(f"'{record.machine_name}' was not created by lightsailvm, removing local state only")
        self._forget()
        log(f"Removed machine '{record.machine_name}'")

    # ── Power ──────────────────────────────────────────────────────

    def _managed_record(self, operation: str) -> MachineRecord:
        record = self.record
        if not record.managed:
            raise UnsupportedOperation(
                f"Cannot {operation} '{record.machine_name}': it was not created by lightsailvm"
            )
        return record

    def _call(self, operation: str, func, *args, **kwargs) -> None:
        try:
            func(*args, **kwargs)
        except ProviderError as e:
            raise ProviderCallFailed(operation, str(e)) from e

    def start(self) -> None:
        """Start the instance and wait until it is running.

        The public IP can change across stop/start, so it is re-read.
        """
        record = self._managed_record("start")
        self._call("start", self.api.start_instance, record.instance_name)
        self._wait_until_running(record.instance_name)
        instance = self._fetch_instance(record.instance_name)
        if instance.public_ip != record.ip_address:
            log(f"IP address changed to '{instance.public_ip}'")
            record.ip_address = instance.public_ip
            self.store.save(record)

    def stop(self) -> None:
        record = self._managed_record("stop")
        self._call("stop", self.api.stop_instance, record.instance_name)

    def kill(self) -> None:
        record = self._managed_record("kill")
        self._call("kill", self.api.stop_instance, record.instance_name, force=True)

    def restart(self) -> None:
        record = self._managed_record("restart")
        self._call("restart", self.api.reboot_instance, record.instance_name)

    # ── State ──────────────────────────────────────────────────────

    def provider_state(self) -> MachineState:
        """State according to the Lightsail control plane."""
        record = self.record
        if not record.managed:
            return self.probe_state()
        try:
            state = self.api.get_instance_state(record.instance_name)
        except ProviderError as e:
            if e.not_found:
                return "NotFound"
            raise ProviderCallFailed("state", str(e)) from e
        return PROVIDER_STATES.get(state["code"], "Error")

    def probe_state(self) -> MachineState:
        """Reachability of the machine's SSH port, without asking Lightsail."""
        record = self.record
        return probe_state(record.ip_address, record.ssh_port, self.config.probe_timeout)

    def get_ip(self) -> str:
        """Recorded public IP, re-read from Lightsail when it is missing."""
        record = self.record
        if not record.ip_address and record.managed:
            instance = self._fetch_instance(record.instance_name)
            record.ip_address = instance.public_ip
            record.ssh_user = record.ssh_user or instance.username
            self.store.save(record)
        return record.ip_address

    def get_url(self) -> str:
        return resolve_url(self.get_ip(), self.record.engine_port)

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_port(self) -> int:
        return self.record.ssh_port

    def get_ssh_username(self) -> str:
        record = self.record
        return record.ssh_user or get_ssh_user(record.blueprint_id)

    def get_ssh_key_path(self) -> str:
        return self.record.private_key_path
