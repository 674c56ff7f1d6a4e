"""Log note naming and validation against the vault."""

from __future__ import annotations

from typing import Optional

from .models import EntryKind
from .store import DocumentStore

NOTE_EXTENSION = ".md"


def log_file_name_from(stem: str) -> str:
    """Turn a user-supplied note name into a vault note path.

    Appends ".md" unless the trimmed name already ends with it
    (checked case-insensitively).

    Args:
        stem: Note name as typed in settings, with or without extension

    Returns:
        Vault-relative note path
    """
    trimmed = stem.strip()
    if trimmed.lower().endswith(NOTE_EXTENSION):
        return trimmed
    return f"{trimmed}{NOTE_EXTENSION}"


def user_pref_from(name: str) -> str:
    """Strip a trailing ".md" so the stored preference is always a stem."""
    trimmed = name.strip()
    if trimmed.lower().endswith(NOTE_EXTENSION):
        return trimmed[: -len(NOTE_EXTENSION)]
    return trimmed


async def validate_log_file_name(store: DocumentStore, name: str) -> Optional[str]:
    """Check that a note path can receive log lines.

    Rules:
    - Name must not be empty
    - Name must not end with a slash
    - Parent folder (if any) must exist and be a folder
    - Path itself must not be an existing folder

    Args:
        store: Vault store used for existence checks
        name: Normalized note path (see log_file_name_from)

    Returns:
        Error message, or None if the name is usable
    """
    trimmed = name.strip()
    # ".md" alone and "folder/.md" come from normalizing "" and "folder/"
    stem = user_pref_from(trimmed)
    if not stem:
        return "Log note name cannot be empty."
    if stem.endswith("/"):
        return "Log note name must not end with a slash."

    parts = trimmed.split("/")
    if len(parts) > 1:
        parent_path = "/".join(parts[:-1])
        try:
            parent = await store.exists(parent_path)
        except ValueError as e:
            return str(e)
        if parent is EntryKind.ABSENT:
            return f"Parent folder '{parent_path}' does not exist."
        if parent is not EntryKind.CONTAINER:
            return f"Parent '{parent_path}' exists but is not a folder."

    try:
        kind = await store.exists(trimmed)
    except ValueError as e:
        return str(e)
    if kind is EntryKind.CONTAINER:
        return f"'{trimmed}' exists but is a folder."

    return None
