"""Lazy reader for registry hive files."""

from __future__ import annotations

import os
import re
import struct
from dataclasses import dataclass, field
from typing import IO, Union

__all__ = [
    "MAIN_ROOT_OFFSET",
    "MAIN_KEY_BLOCK_OFFSET",
    "HiveError",
    "HiveValue",
    "HiveKey",
    "HiveParser",
]

MAIN_ROOT_OFFSET = 0x1000
MAIN_KEY_BLOCK_OFFSET = MAIN_ROOT_OFFSET + 0x20

# Key ("nk") block: size, type, subkey count, subkey list, value count, value list, name.
_KEY_BLOCK = struct.Struct("<i2s18xi4xi4xii28xhh255s")
_KEY_BLOCK_SIZE = 336
# Value ("vk") block: size, type, name length, data size, data offset, value type, flags, name.
_VALUE_BLOCK = struct.Struct("<i2shiiihh255s")
_VALUE_BLOCK_SIZE = 280
_VALUE_OFFSET_FIELD = 12
# Subkey list ("lf"/"lh") header and its entries.
_OFFSETS_HEADER = struct.Struct("<i2sh")
_OFFSETS_SIZE = 16
_OFFSETS_ENTRIES = 8
_OFFSET_ENTRY = struct.Struct("<ii")
_INT = struct.Struct("<i")

_NAME_CAPACITY = 255
_RESIDENT_FLAG = 1 << 31

_SEPARATORS = re.compile(r"[\\/]")

PathLike = Union[str, "os.PathLike[str]"]


class HiveError(RuntimeError):
    """Raised when a hive file cannot be read or is malformed."""


@dataclass
class HiveValue:
    """A value stored under a hive key."""

    type: int = 0
    name: str = ""
    data: bytes = b""


@dataclass
class _RawHiveValue(HiveValue):
    parsed: bool = False
    data_offset: int = 0
    data_length: int = 0


def _read(file: IO[bytes], offset: int, size: int) -> bytes:
    if offset < 0:
        raise HiveError("Failed to read file data")
    try:
        file.seek(offset)
        data = file.read(size)
    except (OSError, ValueError) as exc:
        raise HiveError("Failed to read file data") from exc
    if len(data) != size:
        raise HiveError("Failed to read file data")
    return data


def _read_struct(
    file: IO[bytes], layout: struct.Struct, size: int, offset: int, index: int = 0
) -> tuple:
    return layout.unpack_from(_read(file, offset + index * size, size))


def _decode_name(raw: bytes, length: int) -> str:
    length = max(0, min(length, _NAME_CAPACITY))
    return raw[:length].decode("latin-1")


class HiveKey:
    """A key inside a hive; its values and subkeys are parsed on first access."""

    def __init__(self, subkey_block_offset: int, value_count: int, value_offsets: int) -> None:
        self._subkey_block_offset = subkey_block_offset
        self._value_count = value_count
        self._value_offsets = value_offsets
        self._parsed = False
        self._sub_keys: dict[str, HiveKey] = {}
        self._values: dict[str, _RawHiveValue] = {}

    def get_sub_keys(self, file: IO[bytes]) -> dict[str, HiveKey]:
        """Subkeys by lower-case name."""
        self._parse(file)
        return self._sub_keys

    def get_sub_key(self, file: IO[bytes], name: str) -> HiveKey | None:
        return self.get_sub_keys(file).get(name)

    def get_value(self, file: IO[bytes], name: str) -> HiveValue | None:
        """Value by lower-case name, with its data loaded."""
        self._parse(file)
        value = self._values.get(name)
        if value is None:
            return None
        if not value.parsed:
            value.data = _read(file, MAIN_ROOT_OFFSET + value.data_offset, value.data_length)
            value.parsed = True
        return value

    def _parse(self, file: IO[bytes]) -> None:
        if self._parsed:
            return
        self._parsed = True
        self._parse_values(file)
        self._parse_sub_keys(file)

    def _parse_values(self, file: IO[bytes]) -> None:
        for index in range(self._value_count):
            (offset,) = _read_struct(
                file, _INT, _INT.size, MAIN_ROOT_OFFSET + self._value_offsets + 4, index
            )
            _, _, name_len, size, data_offset, value_type, _, _, raw_name = _read_struct(
                file, _VALUE_BLOCK, _VALUE_BLOCK_SIZE, MAIN_ROOT_OFFSET + offset
            )
            name = _decode_name(raw_name, name_len)
            raw_value = _RawHiveValue(
                type=value_type & 0xFFFFFFFF,
                name=name,
                data_length=size & 0xFFFF,
                data_offset=data_offset + 4,
            )
            if size & _RESIDENT_FLAG:
                raw_value.data_offset = offset + _VALUE_OFFSET_FIELD
            self._values[name.lower()] = raw_value

    def _parse_sub_keys(self, file: IO[bytes]) -> None:
        _, block_type, count = _read_struct(
            file, _OFFSETS_HEADER, _OFFSETS_SIZE, MAIN_ROOT_OFFSET + self._subkey_block_offset
        )
        if block_type[1:2] not in (b"f", b"h"):
            return

        entry_offsets = MAIN_ROOT_OFFSET + self._subkey_block_offset + _OFFSETS_ENTRIES
        for index in range(count):
            offset, _ = _read_struct(file, _OFFSET_ENTRY, _OFFSET_ENTRY.size, entry_offsets, index)
            _, _, _, subkeys, value_count, offsets, name_len, _, raw_name = _read_struct(
                file, _KEY_BLOCK, _KEY_BLOCK_SIZE, MAIN_ROOT_OFFSET + offset
            )
            name = _decode_name(raw_name, name_len).lower()
            self._sub_keys.setdefault(name, HiveKey(subkeys, value_count, offsets))


def _parse_root_block(file: IO[bytes]) -> HiveKey:
    if _read(file, 0, 4) != b"regf":
        raise HiveError("Invalid signature")
    _, _, _, subkeys, value_count, offsets, _, _, _ = _read_struct(
        file, _KEY_BLOCK, _KEY_BLOCK_SIZE, MAIN_KEY_BLOCK_OFFSET
    )
    return HiveKey(subkeys, value_count, offsets)


def _split_key(key: PathLike) -> list[str]:
    return [part for part in _SEPARATORS.split(os.fspath(key)) if part]


class HiveParser:
    """An open hive file; keys are looked up by lower-case relative path."""

    def __init__(self, file_path: PathLike) -> None:
        self._path = os.fspath(file_path)
        try:
            self._file: IO[bytes] = open(self._path, "rb")
        except OSError as exc:
            raise HiveError(f"Bad hive file '{self._path}': Failed to read file data") from exc
        try:
            self._root = _parse_root_block(self._file)
        except HiveError as exc:
            self._file.close()
            raise HiveError(f"Bad hive file '{self._path}': {exc}") from exc

    def get_sub_key(self, key: PathLike) -> HiveKey | None:
        current: HiveKey | None = self._root
        for part in _split_key(key):
            if current is None:
                return None
            current = current.get_sub_key(self._file, part)
        return current

    def get_value(self, key: PathLike, name: str) -> HiveValue | None:
        sub_key = self.get_sub_key(key)
        if sub_key is None:
            return None
        return sub_key.get_value(self._file, name)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> HiveParser:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()