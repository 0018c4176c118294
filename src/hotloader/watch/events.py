"""Change events consumed by the reload controller.

Translates ``watchdog`` notifications into the small set of change kinds
the controller understands:
- created, removed, renamed, modified (from the OS)
- start (synthetic, pushed once to force the first build)
"""

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
)

START_EVENT_PATH = "StartEvent"


class ChangeKind(str, Enum):
    """Kind of filesystem change."""

    CREATED = "created"
    REMOVED = "removed"
    RENAMED = "renamed"
    MODIFIED = "modified"
    START = "start"


@dataclass
class ChangeEvent:
    """A single change notification for one path."""

    path: Path
    kind: ChangeKind
    is_directory: bool = False
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.path}"


def start_event() -> ChangeEvent:
    """Build the synthetic event that triggers the initial build."""
    return ChangeEvent(path=Path(START_EVENT_PATH), kind=ChangeKind.START)


def from_watchdog(event: FileSystemEvent) -> list[ChangeEvent]:
    """Convert a watchdog event into zero or more change events.

    A move becomes a rename of the source followed by a create of the
    destination. Directory modifications and open/close notifications
    carry no content change and are dropped.
    """
    src = Path(os.fsdecode(event.src_path))

    if event.event_type == EVENT_TYPE_CREATED:
        return [ChangeEvent(src, ChangeKind.CREATED, event.is_directory)]

    if event.event_type == EVENT_TYPE_DELETED:
        return [ChangeEvent(src, ChangeKind.REMOVED, event.is_directory)]

    if event.event_type == EVENT_TYPE_MOVED:
        dest = Path(os.fsdecode(event.dest_path))
        return [
            ChangeEvent(src, ChangeKind.RENAMED, event.is_directory),
            ChangeEvent(dest, ChangeKind.CREATED, event.is_directory),
        ]

    if event.event_type == EVENT_TYPE_MODIFIED and not event.is_directory:
        return [ChangeEvent(src, ChangeKind.MODIFIED)]

    return []
