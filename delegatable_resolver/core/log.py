"""
Delegatable Resolver Event Journal

The append-only history of every committed event, in commit order.
Entries are hash-chained, so a tampered or reordered journal fails
verify_chain().
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from delegatable_resolver.core.events import Event, event_hash


@dataclass
class JournalEntry:
    """One committed event."""
    index: int
    event: Event
    prev_hash: str
    entry_hash: str
    txn_id: int                # events of one transaction share an id


class EventJournal:
    """Committed events, oldest first."""

    def __init__(self):
        self.entries: list[JournalEntry] = []
        self._txn_counter = 0

    @property
    def length(self) -> int:
        return len(self.entries)

    @property
    def head_hash(self) -> str:
        """Hash of the most recent entry, or empty string for an empty journal."""
        if not self.entries:
            return ""
        return self.entries[-1].entry_hash

    def append_batch(self, events: Iterable[Event]) -> list[JournalEntry]:
        """Append the events of one committed transaction.

        Only the transaction commit path calls this.
        """
        events = list(events)
        if not events:
            return []
        self._txn_counter += 1
        appended = []
        for event in events:
            prev = self.head_hash
            entry = JournalEntry(
                index=len(self.entries),
                event=event,
                prev_hash=prev,
                entry_hash=event_hash(event, prev),
                txn_id=self._txn_counter,
            )
            self.entries.append(entry)
            appended.append(entry)
        return appended

    def verify_chain(self) -> bool:
        for i, entry in enumerate(self.entries):
            expected_prev = "" if i == 0 else self.entries[i - 1].entry_hash
            if entry.prev_hash != expected_prev:
                return False
            if entry.entry_hash != event_hash(entry.event, entry.prev_hash):
                return False
        return True

    def get_entry(self, index: int) -> Optional[JournalEntry]:
        if 0 <= index < len(self.entries):
            return self.entries[index]
        return None

    def entries_since(self, after_hash: str) -> list[JournalEntry]:
        """All entries after a given hash. Unknown hash means diverged: []."""
        if after_hash == "":
            return list(self.entries)
        for i, entry in enumerate(self.entries):
            if entry.entry_hash == after_hash:
                return list(self.entries[i + 1:])
        return []

    def events(self, event_name: Optional[str] = None) -> list[Event]:
        return [e.event for e in self.entries
                if event_name is None or e.event.event_name == event_name]
