"""Kernel objects held in a process's handle stores."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import IO

__all__ = [
    "SEC_IMAGE",
    "RefCountedObject",
    "EventType",
    "Event",
    "FileObject",
    "Section",
    "Semaphore",
    "Port",
]

SEC_IMAGE = 0x1000000


@dataclass
class RefCountedObject:
    """An object that is only removed when its last reference goes."""

    ref_count: int = 1

    def deleter(self) -> bool:
        """Drop one reference; True when none remain."""
        self.ref_count -= 1
        return self.ref_count == 0


class EventType(enum.IntEnum):
    NOTIFICATION = 0
    SYNCHRONIZATION = 1


@dataclass
class Event(RefCountedObject):
    signaled: bool = False
    type: EventType = EventType.NOTIFICATION
    name: str = ""

    def is_signaled(self) -> bool:
        """Report the signal state; synchronization events reset on read."""
        result = self.signaled
        if self.type == EventType.SYNCHRONIZATION:
            self.signaled = False
        return result


@dataclass
class FileObject:
    handle: IO[bytes] | None = None
    name: str = ""


@dataclass
class Section:
    name: str = ""
    file_name: str = ""
    maximum_size: int = 0
    section_page_protection: int = 0
    allocation_attributes: int = 0

    def is_image(self) -> bool:
        return bool(self.allocation_attributes & SEC_IMAGE)


@dataclass
class Semaphore:
    name: str = ""
    current_count: int = 0
    max_count: int = 0


@dataclass
class Port:
    name: str = ""
    view_base: int = 0