"""Bump allocation inside an emulated memory region and UTF-16 counted strings."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Protocol, Union

__all__ = [
    "align_up",
    "UnicodeString",
    "EmulatorAllocator",
    "read_unicode_string",
]

_UNICODE_STRING = struct.Struct("<HH4xQ")
_UNICODE_STRING_ALIGNMENT = 8
_WCHAR_SIZE = 2
_WCHAR_ALIGNMENT = 2
_USHORT_MASK = 0xFFFF


class _Memory(Protocol):
    def read_memory(self, address: int, size: int) -> bytes: ...

    def write_memory(self, address: int, data: bytes) -> None: ...

    def release_memory(self, address: int, size: int) -> bool: ...


def align_up(value: int, alignment: int) -> int:
    """Round a value up to a power-of-two alignment."""
    if alignment <= 0:
        raise ValueError("Alignment must be positive")
    return (value + alignment - 1) & ~(alignment - 1)


@dataclass(frozen=True)
class UnicodeString:
    """A counted UTF-16 string descriptor: byte lengths and buffer address."""

    length: int = 0
    maximum_length: int = 0
    buffer: int = 0

    SIZE = _UNICODE_STRING.size

    def pack(self) -> bytes:
        return _UNICODE_STRING.pack(
            self.length & _USHORT_MASK, self.maximum_length & _USHORT_MASK, self.buffer
        )

    @classmethod
    def unpack(cls, data: bytes, offset: int = 0) -> UnicodeString:
        length, maximum_length, buffer = _UNICODE_STRING.unpack_from(data, offset)
        return cls(length=length, maximum_length=maximum_length, buffer=buffer)


class EmulatorAllocator:
    """Hands out consecutive, aligned pieces of one emulated memory region."""

    def __init__(self, memory: _Memory, address: int = 0, size: int = 0) -> None:
        self._memory = memory
        self._address = address
        self._size = size
        self._active_address = address

    @property
    def memory(self) -> _Memory:
        return self._memory

    @property
    def base(self) -> int:
        return self._address

    @property
    def size(self) -> int:
        return self._size

    @property
    def next_address(self) -> int:
        return self._active_address

    def reserve(self, count: int, alignment: int = 1) -> int:
        """Reserve ``count`` bytes; returns their address or raises when full."""
        start = align_up(self._active_address, alignment)
        end = start + count
        if end > self._address + self._size:
            raise RuntimeError("Out of memory")
        self._active_address = end
        return start

    def _write_string(self, text: str) -> UnicodeString:
        encoded = text.encode("utf-16-le")
        total_length = len(encoded)
        buffer = self.reserve(total_length + _WCHAR_SIZE, _WCHAR_ALIGNMENT)
        self._memory.write_memory(buffer, encoded + b"\0" * _WCHAR_SIZE)
        return UnicodeString(
            length=total_length & _USHORT_MASK,
            maximum_length=(total_length + _WCHAR_SIZE) & _USHORT_MASK,
            buffer=buffer,
        )

    def copy_string(self, text: str) -> int:
        """Store a null-terminated UTF-16 copy of ``text``; returns its address."""
        return self._write_string(text).buffer

    def make_unicode_string(self, text: str) -> int:
        """Store a descriptor and its string; returns the descriptor's address."""
        descriptor = self.reserve(UnicodeString.SIZE, _UNICODE_STRING_ALIGNMENT)
        value = self._write_string(text)
        self._memory.write_memory(descriptor, value.pack())
        return descriptor

    def release(self) -> None:
        """Give the region back to the emulator, once."""
        if self._memory is not None and self._address and self._size:
            self._memory.release_memory(self._address, self._size)
            self._address = 0
            self._size = 0


def read_unicode_string(memory: _Memory, ucs: Union[UnicodeString, int]) -> str:
    """Read the text of a descriptor, given directly or by its address."""
    if not isinstance(ucs, UnicodeString):
        ucs = UnicodeString.unpack(memory.read_memory(int(ucs), UnicodeString.SIZE))
    character_bytes = (ucs.length // _WCHAR_SIZE) * _WCHAR_SIZE
    data = memory.read_memory(ucs.buffer, ucs.length)
    return data[:character_bytes].decode("utf-16-le", errors="replace")