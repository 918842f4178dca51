from __future__ import annotations

from typing import Dict, NamedTuple, Optional


class Deadline(NamedTuple):
    key: str
    deadline: float


class DeadlineStore:
    """Key -> wake-up timestamp map with an earliest-entry query.

    Cardinality is the number of files being written at once, so a linear
    scan beats keeping a heap in sync with overwrites. Ties on the deadline
    go to the smaller key.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def set(self, key: str, deadline: float) -> None:
        self._entries[key] = deadline

    def peek_earliest(self) -> Optional[Deadline]:
        if not self._entries:
            return None
        key, deadline = min(self._entries.items(), key=lambda kv: (kv[1], kv[0]))
        return Deadline(key, deadline)

    def pop_earliest(self) -> Optional[Deadline]:
        entry = self.peek_earliest()
        if entry is not None:
            del self._entries[entry.key]
        return entry
