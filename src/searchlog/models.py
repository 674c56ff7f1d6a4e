"""Pydantic models and enums for Search Logger."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SearchEvent(BaseModel):
    """One search-query occurrence reported by the browser extension.

    Received as JSON on POST /log. Only ever projected into a note line,
    never stored as a structured record.
    """

    query: str = Field(description="Search terms as typed by the user")
    url: str = Field(description="URL of the search results page")
    timestamp: int = Field(description="Milliseconds since the Unix epoch")

    model_config = {"frozen": True}


class EntryKind(str, Enum):
    """What a vault path currently points at."""

    ABSENT = "absent"
    DOCUMENT = "document"
    CONTAINER = "container"


class CommitOutcome(str, Enum):
    """Result of committing one line to the log note."""

    CREATED = "created"
    APPENDED = "appended"
    PREPENDED = "prepended"
    SKIPPED_CONTAINER = "skipped_container"
