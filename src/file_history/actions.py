"""Actions a selection UI dispatches on a picked candidate.

Each action is a small object with ``execute(service, target)``. The UI
chooses the action; the action calls the matching service operation.
Destructive actions take a ``confirm`` callable and do nothing unless it
returns True.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Union

from pydantic import BaseModel

from .history import Candidate, FileCandidate
from .pathcodec import decode_key
from .service import FileHistoryService

Confirm = Callable[[str], bool]
Target = Union[Candidate, FileCandidate]


class ActionResult(BaseModel):
    """Outcome of running an action."""
    action: str
    performed: bool
    content: Optional[bytes] = None
    text: Optional[str] = None
    path: Optional[str] = None


class Action(Protocol):
    """Interface implemented by every action variant."""

    name: str

    def execute(self, service: FileHistoryService, target: Target) -> ActionResult:
        ...


def _snapshot_target(target: Target) -> Candidate:
    if not isinstance(target, Candidate):
        raise TypeError(f"{type(target).__name__} does not name a snapshot")
    return target


@dataclass
class OpenAction:
    """Fetch a snapshot's content as a new document."""
    name: str = "open"

    def execute(self, service: FileHistoryService, target: Target) -> ActionResult:
        candidate = _snapshot_target(target)
        content = service.open_snapshot(candidate.key, candidate.snapshot_id)
        return ActionResult(action=self.name, performed=True, content=content)


@dataclass
class DiffAction:
    """Render the change a snapshot introduced (live preview)."""
    name: str = "diff"

    def execute(self, service: FileHistoryService, target: Target) -> ActionResult:
        candidate = _snapshot_target(target)
        text = service.show_diff(candidate.key, candidate.snapshot_id)
        return ActionResult(action=self.name, performed=True, text=text)


@dataclass
class RestoreAction:
    """Overwrite the live file with a snapshot after confirmation.

    The destination defaults to the file the snapshot was taken from.
    """
    confirm: Confirm
    destination: Optional[Path] = None
    name: str = "restore"

    def execute(self, service: FileHistoryService, target: Target) -> ActionResult:
        candidate = _snapshot_target(target)
        destination = self.destination or Path(decode_key(candidate.key))
        if not self.confirm(f"Overwrite {destination} with snapshot {candidate.snapshot_id[:12]}?"):
            return ActionResult(action=self.name, performed=False, path=str(destination))
        written = service.restore_snapshot(candidate.key, candidate.snapshot_id, destination)
        return ActionResult(action=self.name, performed=True, path=str(written))


@dataclass
class DeleteAction:
    """Delete a file's whole history after confirmation."""
    confirm: Confirm
    name: str = "delete"

    def execute(self, service: FileHistoryService, target: Target) -> ActionResult:
        key = target.key
        label = decode_key(key)
        if not self.confirm(f"Delete all history of {label}?"):
            return ActionResult(action=self.name, performed=False, path=label)
        service.delete_file_history(key)
        return ActionResult(action=self.name, performed=True, path=label)
