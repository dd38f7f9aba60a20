import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class JournalEntry:
    guild_id: str
    author_id: str
    message_id: str
    outcome: str
    step: str = ""
    detail: str = ""
    timestamp: float = field(default_factory=time.time)


class AttemptJournal:
    """
    In-memory journal of verification attempts for staff diagnostics.
    Keeps a bounded list per guild.
    """

    def __init__(self, max_entries_per_guild: int = 50):
        self.max_entries_per_guild = max_entries_per_guild
        self._entries: Dict[str, List[JournalEntry]] = {}

    def record(
        self,
        guild_id: str,
        author_id: str,
        message_id: str,
        outcome: str,
        step: str = "",
        detail: str = "",
    ) -> JournalEntry:
        entry = JournalEntry(
            guild_id=str(guild_id),
            author_id=str(author_id),
            message_id=str(message_id),
            outcome=outcome,
            step=step,
            detail=detail,
        )
        bucket = self._entries.setdefault(str(guild_id), [])
        bucket.append(entry)
        if len(bucket) > self.max_entries_per_guild:
            bucket.pop(0)
        return entry

    def last_for(self, guild_id: str, author_id: str) -> Optional[JournalEntry]:
        bucket = self._entries.get(str(guild_id)) or []
        for entry in reversed(bucket):
            if entry.author_id == str(author_id):
                return entry
        return None
