"""Per-machine local state: the machine record and key files."""

import json
import shutil
from pathlib import Path

from .errors import MachineNotFound
from .types import MachineRecord

RECORD_FILENAME = "machine.json"


class MachineStore:
    """Directory tree ``<root>/machines/<name>/`` holding each machine's state.

    :param root: Store root, e.g. ~/.lightsailvm
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def machine_dir(self, name: str) -> Path:
        return self.root / "machines" / name

    def record_path(self, name: str) -> Path:
        return self.machine_dir(name) / RECORD_FILENAME

    def exists(self, name: str) -> bool:
        return self.record_path(name).exists()

    def load(self, name: str) -> MachineRecord:
        """Load the machine record.

        :raises MachineNotFound: No record for this machine
        """
        path = self.record_path(name)
        if not path.exists():
            raise MachineNotFound(f"No machine named '{name}' in '{self.root}'")
        return MachineRecord.from_dict(json.loads(path.read_text()))

    def find(self, name: str) -> MachineRecord | None:
        if not self.exists(name):
            return None
        return self.load(name)

    def save(self, record: MachineRecord) -> None:
        path = self.record_path(record.machine_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record.to_dict(), indent=2))

    def delete(self, name: str) -> None:
        path = self.machine_dir(name)
        if path.exists():
            shutil.rmtree(path)

    def list_names(self) -> list[str]:
        machines = self.root / "machines"
        if not machines.is_dir():
            return []
        return sorted(p.parent.name for p in machines.glob(f"*/{RECORD_FILENAME}"))
