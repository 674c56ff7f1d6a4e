"""Log note writer: one accepted search event becomes one Markdown line."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, tzinfo
from typing import Optional

from .models import CommitOutcome, EntryKind, SearchEvent
from .store import DocumentStore

logger = logging.getLogger(__name__)

# Everything str.splitlines() breaks on
_LINE_BREAKS = re.compile(r"[\n\r\x0b\x0c\x1c\x1d\x1e\x85\u2028\u2029]+")


def format_timestamp(ms: int, tz: Optional[tzinfo] = None) -> str:
    """Render epoch milliseconds as "YYYY-MM-DD HH:MM".

    Args:
        ms: Milliseconds since the Unix epoch
        tz: Timezone to render in (default: local time)
    """
    moment = datetime.fromtimestamp(ms / 1000, tz=tz)
    return moment.strftime("%Y-%m-%d %H:%M")


def format_line(event: SearchEvent, tz: Optional[tzinfo] = None) -> str:
    """Build the note line for an event.

    Line breaks inside the query or URL become single spaces so the event
    stays on one line.

    Example:
        - 2023-11-14 22:13\t— [cats](https://duckduckgo.com/?q=cats)
    """
    stamp = format_timestamp(event.timestamp, tz)
    query = _LINE_BREAKS.sub(" ", event.query)
    url = _LINE_BREAKS.sub(" ", event.url)
    return f"- {stamp}\t— [{query}]({url})\n"


_LINE_PATTERN = re.compile(r"^- (\d{4}-\d{2}-\d{2} \d{2}:\d{2})\t— \[(.*)\]\((.*)\)$")


def parse_line(line: str) -> Optional[tuple[str, str, str]]:
    """Split a note line back into (timestamp, query, url).

    Returns None for lines the writer did not produce (headings, notes
    the user typed by hand, blank lines).
    """
    match = _LINE_PATTERN.match(line.rstrip("\r\n"))
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


def read_log_lines(content: str) -> list[tuple[str, str, str]]:
    """Parse every logged line in a note, in document order."""
    entries = []
    for line in content.splitlines():
        parsed = parse_line(line)
        if parsed is not None:
            entries.append(parsed)
    return entries


class LogWriter:
    """Commits search lines to a single log note.

    Append mode adds lines at the bottom, prepend mode at the top. Prepend
    is a read-modify-write; without serialize_commits two overlapping
    commits can read the same old content and the later write wins.
    """

    def __init__(
        self,
        store: DocumentStore,
        note_path: str,
        prepend_mode: bool = False,
        *,
        tz: Optional[tzinfo] = None,
        serialize_commits: bool = False,
    ):
        """Initialize writer.

        Args:
            store: Vault store holding the note
            note_path: Normalized vault-relative note path
            prepend_mode: Insert new lines at the top instead of the bottom
            tz: Timezone used to render timestamps (default: local time)
            serialize_commits: Run commits one at a time through a lock
        """
        self.store = store
        self.note_path = note_path
        self.prepend_mode = prepend_mode
        self.tz = tz
        self.serialize_commits = serialize_commits
        self._lock = asyncio.Lock() if serialize_commits else None

    async def commit(self, event: SearchEvent) -> CommitOutcome:
        """Write the event's line into the note.

        Returns:
            What happened to the note

        Raises:
            OSError: If the store fails to create/read/write the note
        """
        line = format_line(event, self.tz)
        if self._lock is None:
            return await self._commit_line(line)
        async with self._lock:
            return await self._commit_line(line)

    async def _commit_line(self, line: str) -> CommitOutcome:
        kind = await self.store.exists(self.note_path)

        if kind is EntryKind.ABSENT:
            await self.store.create(self.note_path, line)
            return CommitOutcome.CREATED

        if kind is EntryKind.CONTAINER:
            logger.warning(f'"{self.note_path}" exists but is a folder. Skipping.')
            return CommitOutcome.SKIPPED_CONTAINER

        if self.prepend_mode:
            old_content = await self.store.read(self.note_path)
            await self.store.modify(self.note_path, line + old_content)
            return CommitOutcome.PREPENDED

        await self.store.append(self.note_path, line)
        return CommitOutcome.APPENDED

    async def init_note(self) -> bool:
        """Create the note empty if it does not exist yet.

        Returns:
            True if the note was created
        """
        kind = await self.store.exists(self.note_path)
        if kind is not EntryKind.ABSENT:
            return False
        await self.store.create(self.note_path, "")
        logger.info(f"Created new log note: {self.note_path}")
        return True
