"""Mapping of 64-bit PE images into an emulator's memory."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union

from winemu.mapped_module import ExportedSymbol, MappedModule
from winemu.memory import MemoryPermission

__all__ = ["PAGE_SIZE", "map_module_from_data", "map_module_from_file", "unmap_module"]

PathLike = Union[str, "os.PathLike[str]"]

PAGE_SIZE = 0x1000

_U32_MASK = 0xFFFFFFFF
_U64_MASK = 0xFFFFFFFFFFFFFFFF

_DOS_HEADER_SIZE = 64
_E_LFANEW_OFFSET = 0x3C
_NT_HEADERS_SIZE = 264

_INT32 = struct.Struct("<i")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
# Signature followed by the file header.
_FILE_HEADER = struct.Struct("<IHHIIIHH")
_OPTIONAL_HEADER = struct.Struct("<H2B5IQ2I6H4I2H4Q2I32I")
_SECTION_HEADER = struct.Struct("<8sIIIIIIHHI")
_EXPORT_DIRECTORY = struct.Struct("<IIHHIIIIIII")
_BASE_RELOCATION = struct.Struct("<II")

_DIRECTORY_ENTRY_EXPORT = 0
_DIRECTORY_ENTRY_BASERELOC = 5

_IMAGE_FILE_DLL = 0x2000
_IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE = 0x0040

_IMAGE_SCN_MEM_EXECUTE = 0x20000000
_IMAGE_SCN_MEM_READ = 0x40000000
_IMAGE_SCN_MEM_WRITE = 0x80000000

_IMAGE_REL_BASED_ABSOLUTE = 0
_IMAGE_REL_BASED_HIGHLOW = 3
_IMAGE_REL_BASED_DIR64 = 10


class _Emulator(Protocol):
    def allocate_memory(self, address: int, size: int, permission: MemoryPermission) -> bool: ...

    def find_free_allocation_base(self, size: int) -> int: ...

    def read_memory(self, address: int, size: int) -> bytes: ...

    def write_memory(self, address: int, data: bytes) -> None: ...

    def protect_memory(self, address: int, size: int, permission: MemoryPermission) -> None: ...

    def release_memory(self, address: int, size: int) -> bool: ...


class _OutOfBounds(ValueError):
    pass


class _Buffer:
    """Bounds-checked view over image bytes."""

    def __init__(self, data: bytes | bytearray) -> None:
        self.data = data

    def range(self, offset: int, size: int) -> bytes:
        if offset < 0 or size < 0 or offset + size > len(self.data):
            raise _OutOfBounds(f"Access of 0x{size:X} bytes at 0x{offset:X} is out of bounds")
        return bytes(self.data[offset:offset + size])

    def unpack(self, layout: struct.Struct, offset: int, index: int = 0) -> tuple:
        return layout.unpack(self.range(offset + index * layout.size, layout.size))

    def pack(self, layout: struct.Struct, offset: int, *values: int) -> None:
        self.range(offset, layout.size)
        layout.pack_into(self.data, offset, *values)

    def string(self, offset: int) -> str:
        if offset < 0 or offset >= len(self.data):
            raise _OutOfBounds(f"String at 0x{offset:X} is out of bounds")
        end = self.data.find(b"\0", offset)
        if end < 0:
            raise _OutOfBounds(f"String at 0x{offset:X} is not terminated")
        return bytes(self.data[offset:end]).decode("latin-1")


@dataclass(frozen=True)
class _Headers:
    nt_offset: int
    number_of_sections: int
    size_of_optional_header: int
    characteristics: int
    entry_point: int
    image_base: int
    size_of_image: int
    size_of_headers: int
    dll_characteristics: int
    directories: tuple[tuple[int, int], ...]

    @property
    def first_section_offset(self) -> int:
        return self.nt_offset + _FILE_HEADER.size + self.size_of_optional_header


def _page_align_up(value: int) -> int:
    return (value + PAGE_SIZE - 1) & ~(PAGE_SIZE - 1)


def _parse_headers(buffer: _Buffer) -> _Headers:
    buffer.range(0, _DOS_HEADER_SIZE)
    (nt_offset,) = buffer.unpack(_INT32, _E_LFANEW_OFFSET)
    buffer.range(nt_offset, _NT_HEADERS_SIZE)

    _, _, sections, _, _, _, optional_size, characteristics = buffer.unpack(_FILE_HEADER, nt_offset)
    fields = buffer.unpack(_OPTIONAL_HEADER, nt_offset + _FILE_HEADER.size)
    raw_directories = fields[29:]
    directories = tuple(zip(raw_directories[0::2], raw_directories[1::2]))

    return _Headers(
        nt_offset=nt_offset,
        number_of_sections=sections,
        size_of_optional_header=optional_size,
        characteristics=characteristics,
        entry_point=fields[6],
        image_base=fields[8],
        size_of_image=fields[18],
        size_of_headers=fields[19],
        dll_characteristics=fields[22],
        directories=directories,
    )


def _collect_exports(binary: MappedModule, buffer: _Buffer, headers: _Headers) -> None:
    directory_rva, directory_size = headers.directories[_DIRECTORY_ENTRY_EXPORT]
    if directory_rva == 0 or directory_size == 0:
        return

    directory = buffer.unpack(_EXPORT_DIRECTORY, directory_rva)
    names_count, functions, names, ordinals = directory[7], directory[8], directory[9], directory[10]

    for index in range(names_count):
        (ordinal,) = buffer.unpack(_U16, ordinals, index)
        (name_rva,) = buffer.unpack(_U32, names, index)
        (rva,) = buffer.unpack(_U32, functions, ordinal)
        binary.exports.append(
            ExportedSymbol(
                name=buffer.string(name_rva),
                ordinal=ordinal,
                rva=rva,
                address=binary.image_base + rva,
            )
        )

    for symbol in binary.exports:
        binary.address_names.setdefault(symbol.address, symbol.name)


def _apply_relocation(buffer: _Buffer, layout: struct.Struct, mask: int, offset: int, delta: int) -> None:
    (value,) = buffer.unpack(layout, offset)
    buffer.pack(layout, offset, (value + delta) & mask)


def _apply_relocations(binary: MappedModule, buffer: _Buffer, headers: _Headers) -> None:
    delta = (binary.image_base - headers.image_base) & _U64_MASK
    if delta == 0:
        return

    directory_rva, directory_size = headers.directories[_DIRECTORY_ENTRY_BASERELOC]
    if directory_size == 0:
        return

    offset = directory_rva
    end = (directory_rva + directory_size) & _U32_MASK

    while offset < end:
        virtual_address, block_size = buffer.unpack(_BASE_RELOCATION, offset)
        if virtual_address == 0 or block_size <= _BASE_RELOCATION.size:
            break

        entry_count = (block_size - _BASE_RELOCATION.size) // _U16.size
        entries_offset = offset + _BASE_RELOCATION.size
        offset += block_size

        for index in range(entry_count):
            (entry,) = buffer.unpack(_U16, entries_offset, index)
            kind = entry >> 12
            target = virtual_address + (entry & 0xFFF)

            if kind == _IMAGE_REL_BASED_ABSOLUTE:
                continue
            if kind == _IMAGE_REL_BASED_HIGHLOW:
                _apply_relocation(buffer, _U32, _U32_MASK, target, delta)
            elif kind == _IMAGE_REL_BASED_DIR64:
                _apply_relocation(buffer, _U64, _U64_MASK, target, delta)
            else:
                raise ValueError(f"Unknown relocation type: {kind}")


def _section_permissions(characteristics: int) -> MemoryPermission:
    permissions = MemoryPermission.NONE
    if characteristics & _IMAGE_SCN_MEM_EXECUTE:
        permissions |= MemoryPermission.EXEC
    if characteristics & _IMAGE_SCN_MEM_READ:
        permissions |= MemoryPermission.READ
    if characteristics & _IMAGE_SCN_MEM_WRITE:
        permissions |= MemoryPermission.WRITE
    return permissions


def _map_sections(emu: _Emulator, binary: MappedModule, buffer: _Buffer, headers: _Headers) -> None:
    first_section = headers.first_section_offset
    for index in range(headers.number_of_sections):
        (
            _name,
            virtual_size,
            virtual_address,
            raw_size,
            raw_pointer,
            _relocations,
            _line_numbers,
            _relocation_count,
            _line_number_count,
            characteristics,
        ) = buffer.unpack(_SECTION_HEADER, first_section, index)

        target = binary.image_base + virtual_address

        if raw_size > 0:
            size_of_data = min(raw_size, virtual_size)
            emu.write_memory(target, buffer.range(raw_pointer, size_of_data))

        size_of_section = _page_align_up(max(raw_size, virtual_size))
        emu.protect_memory(target, size_of_section, _section_permissions(characteristics))


def _map_module(emu: _Emulator, data: bytes, file: Path) -> MappedModule | None:
    binary = MappedModule(name=file.name, path=file)
    buffer = _Buffer(data)
    headers = _parse_headers(buffer)

    binary.image_base = headers.image_base
    binary.size_of_image = headers.size_of_image

    if not emu.allocate_memory(binary.image_base, binary.size_of_image, MemoryPermission.READ):
        binary.image_base = emu.find_free_allocation_base(binary.size_of_image)
        is_dll = bool(headers.characteristics & _IMAGE_FILE_DLL)
        has_dynamic_base = bool(headers.dll_characteristics & _IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE)

        if not (is_dll or has_dynamic_base) or not emu.allocate_memory(
            binary.image_base, binary.size_of_image, MemoryPermission.READ
        ):
            return None

    binary.entry_point = binary.image_base + headers.entry_point

    emu.write_memory(binary.image_base, buffer.range(0, headers.size_of_headers))
    _map_sections(emu, binary, buffer, headers)

    mapped = _Buffer(bytearray(emu.read_memory(binary.image_base, binary.size_of_image)))
    _apply_relocations(binary, mapped, headers)
    _collect_exports(binary, mapped, headers)

    emu.write_memory(binary.image_base, bytes(mapped.data))
    return binary


def map_module_from_data(emu: _Emulator, data: bytes, file: PathLike) -> MappedModule | None:
    """Map an image held in memory; None when it cannot be mapped."""
    try:
        return _map_module(emu, bytes(data), Path(file))
    except Exception:
        return None


def map_module_from_file(emu: _Emulator, file: PathLike) -> MappedModule | None:
    """Map an image read from disk; None when it is missing, empty or invalid."""
    path = Path(file)
    try:
        data = path.read_bytes()
    except OSError:
        return None
    if not data:
        return None
    return map_module_from_data(emu, data, path)


def unmap_module(emu: _Emulator, mod: MappedModule) -> bool:
    """Release the memory an image occupies."""
    return emu.release_memory(mod.image_base, mod.size_of_image)