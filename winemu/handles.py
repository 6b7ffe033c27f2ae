"""Handle encoding and typed handle stores."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

__all__ = [
    "HandleType",
    "Handle",
    "make_handle",
    "make_pseudo_handle",
    "get_handle_value",
    "HandleStore",
    "KNOWN_DLLS_DIRECTORY",
    "KNOWN_DLLS_SYMLINK",
    "SHARED_SECTION",
    "CONSOLE_HANDLE",
    "STDOUT_HANDLE",
    "STDIN_HANDLE",
]

T = TypeVar("T")

_ID_MASK = 0xFFFFFFFF
_TYPE_MASK = 0xFFFF
_PADDING_MASK = 0x7FFF


class HandleType(enum.IntEnum):
    """Kind of kernel object a handle refers to."""

    RESERVED = 0
    FILE = 1
    DEVICE = 2
    EVENT = 3
    SECTION = 4
    SYMLINK = 5
    DIRECTORY = 6
    SEMAPHORE = 7
    PORT = 8
    THREAD = 9
    REGISTRY = 10


@dataclass(frozen=True, eq=False)
class Handle:
    """A 64-bit handle: 32-bit id, 16-bit type, 15 padding bits, pseudo flag."""

    id: int = 0
    type: int = HandleType.RESERVED
    is_pseudo: bool = False
    padding: int = 0

    def to_bits(self) -> int:
        return (
            (self.id & _ID_MASK)
            | (int(self.type) & _TYPE_MASK) << 32
            | (self.padding & _PADDING_MASK) << 48
            | int(bool(self.is_pseudo)) << 63
        )

    @classmethod
    def from_bits(cls, bits: int) -> Handle:
        bits &= 0xFFFFFFFFFFFFFFFF
        return cls(
            id=bits & _ID_MASK,
            type=(bits >> 32) & _TYPE_MASK,
            is_pseudo=bool(bits >> 63),
            padding=(bits >> 48) & _PADDING_MASK,
        )

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Handle):
            return self.to_bits() == other.to_bits()
        if isinstance(other, int):
            return self.to_bits() == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.to_bits())

    def __int__(self) -> int:
        return self.to_bits()


def make_handle(id: int, type: int, is_pseudo: bool) -> Handle:
    return Handle(id=id & _ID_MASK, type=type, is_pseudo=is_pseudo)


def make_pseudo_handle(id: int, type: int) -> Handle:
    return make_handle(id, type, True)


def get_handle_value(bits: int) -> Handle:
    return Handle.from_bits(bits)


class HandleStore(Generic[T]):
    """Maps handles of one type to stored objects, allocating the lowest free index."""

    def __init__(self, handle_type: int, index_shift: int = 0) -> None:
        self.handle_type = handle_type
        self.index_shift = index_shift
        self._blocked = False
        self._store: dict[int, T] = {}

    def block_mutation(self, blocked: bool) -> bool:
        """Set whether the store may change; returns the previous setting."""
        previous, self._blocked = self._blocked, blocked
        return previous

    def _check_mutable(self) -> None:
        if self._blocked:
            raise RuntimeError("Mutation of handle store is blocked!")

    def store(self, value: T) -> Handle:
        self._check_mutable()
        index = self._find_free_index()
        self._store[index] = value
        return self.make_handle(index)

    def make_handle(self, index: int) -> Handle:
        return Handle(id=(index << self.index_shift) & _ID_MASK, type=self.handle_type, is_pseudo=False)

    def get_by_index(self, index: int) -> T | None:
        return self.get(self.make_handle(index))

    def get(self, handle: Handle | int) -> T | None:
        index = self._index_of(handle)
        return None if index is None else self._store.get(index)

    def erase(self, handle: Handle | int) -> bool:
        self._check_mutable()
        index = self._index_of(handle)
        if index is None or index not in self._store:
            return False
        return self._erase_index(index)

    def erase_value(self, value: T) -> bool:
        self._check_mutable()
        index = self._find_index(value)
        if index is None:
            return False
        return self._erase_index(index)

    def find_handle(self, value: T | None) -> Handle:
        """Handle of the stored object (by identity), or a null handle."""
        if value is None:
            return Handle()
        index = self._find_index(value)
        if index is None:
            return Handle()
        return self.make_handle(index)

    def __len__(self) -> int:
        return len(self._store)

    def __iter__(self) -> Iterator[tuple[int, T]]:
        return iter(sorted(self._store.items(), key=lambda item: item[0]))

    def _erase_index(self, index: int) -> bool:
        value: Any = self._store[index]
        deleter = getattr(value, "deleter", None)
        if callable(deleter) and not deleter():
            return False
        del self._store[index]
        return True

    def _index_of(self, handle: Handle | int) -> int | None:
        if not isinstance(handle, Handle):
            handle = Handle.from_bits(int(handle))
        if handle.type != self.handle_type or handle.is_pseudo:
            return None
        return (handle.id & _ID_MASK) >> self.index_shift

    def _find_index(self, value: T) -> int | None:
        return next((index for index, stored in self._store.items() if stored is value), None)

    def _find_free_index(self) -> int:
        for index in range(1, 1 << 32):
            if index not in self._store:
                return index
        return 0


KNOWN_DLLS_DIRECTORY = make_pseudo_handle(0x1337, HandleType.DIRECTORY)
KNOWN_DLLS_SYMLINK = make_pseudo_handle(0x1337, HandleType.SYMLINK)
SHARED_SECTION = make_pseudo_handle(0x1337, HandleType.SECTION)

CONSOLE_HANDLE = make_pseudo_handle(0x1, HandleType.FILE)
STDOUT_HANDLE = make_pseudo_handle(0x2, HandleType.FILE)
STDIN_HANDLE = make_pseudo_handle(0x3, HandleType.FILE)