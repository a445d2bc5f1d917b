"""Candidate lists for selection front ends.

A selection UI shows labels and hands back whichever candidate the user
picked. Ids travel beside the label, never inside it, so resolving a pick
never parses display text (messages are free-form and may collide).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from .errors import InvalidPathError, StaleSelectionError
from .pathcodec import decode_key
from .repository import BackupRepository

LABEL_GAP = "  "


@dataclass(frozen=True)
class Candidate:
    """One selectable snapshot row."""

    label: str
    snapshot_id: str
    key: str


@dataclass(frozen=True)
class FileCandidate:
    """One selectable tracked file (management view)."""

    label: str
    key: str


@dataclass
class CandidateList:
    """Ordered candidates (newest first) with O(1) id resolution."""

    key: str
    candidates: List[Candidate] = field(default_factory=list)
    _by_id: Dict[str, Candidate] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {c.snapshot_id: c for c in self.candidates}

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self.candidates)

    def __getitem__(self, index: int) -> Candidate:
        return self.candidates[index]

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.candidates]

    def resolve(self, candidate: Candidate) -> str:
        """Snapshot id carried by a candidate from this list.

        Raises:
            StaleSelectionError: If the candidate does not belong to this list
        """
        if self._by_id.get(candidate.snapshot_id) != candidate:
            raise StaleSelectionError(self.key, candidate.snapshot_id)
        return candidate.snapshot_id

    def resolve_index(self, index: int) -> str:
        """Snapshot id of the index-th candidate."""
        try:
            return self.candidates[index].snapshot_id
        except IndexError:
            raise StaleSelectionError(self.key) from None

    def get(self, snapshot_id: str) -> Optional[Candidate]:
        return self._by_id.get(snapshot_id)


class HistoryQuery:
    """Builds candidate lists from the backup repository."""

    def __init__(self, repository: BackupRepository):
        self.repository = repository

    def candidates(
        self,
        key: str,
        date_template: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CandidateList:
        """Snapshot candidates for key, newest first.

        Labels are the display time padded to the widest one in the list,
        then the message::

            2025-08-26 02:51:17, 2 hours ago  backup /home/ana/notes.txt
            2025-08-20 10:00:03, 6 days ago   fixed typo

        Raises:
            NotFoundError: If key has no history
        """
        entries = self.repository.list_snapshots(key, date_template=date_template, now=now)
        width = max((len(e.display_time) for e in entries), default=0)
        return CandidateList(
            key=key,
            candidates=[
                Candidate(
                    label=f"{e.display_time.ljust(width)}{LABEL_GAP}{e.message}",
                    snapshot_id=e.id,
                    key=key,
                )
                for e in entries
            ],
        )

    def file_candidates(self) -> List[FileCandidate]:
        """Every tracked file, labelled by its original absolute path."""
        result = []
        for key in self.repository.list_all_storage_keys():
            try:
                label = decode_key(key)
            except InvalidPathError:
                label = key
            result.append(FileCandidate(label=label, key=key))
        return sorted(result, key=lambda c: c.label)
