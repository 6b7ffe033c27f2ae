"""Memory permissions and their mapping to NT page protection values."""

from __future__ import annotations

import enum

PAGE_NOACCESS = 0x01
PAGE_READONLY = 0x02
PAGE_READWRITE = 0x04
PAGE_WRITECOPY = 0x08
PAGE_EXECUTE = 0x10
PAGE_EXECUTE_READ = 0x20
PAGE_EXECUTE_READWRITE = 0x40
PAGE_EXECUTE_WRITECOPY = 0x80
PAGE_GUARD = 0x100

__all__ = [
    "MemoryPermission",
    "get_permission_string",
    "map_nt_to_emulator_protection",
    "map_emulator_to_nt_protection",
    "PAGE_NOACCESS",
    "PAGE_READONLY",
    "PAGE_READWRITE",
    "PAGE_WRITECOPY",
    "PAGE_EXECUTE",
    "PAGE_EXECUTE_READ",
    "PAGE_EXECUTE_READWRITE",
    "PAGE_EXECUTE_WRITECOPY",
    "PAGE_GUARD",
]


class MemoryPermission(enum.IntFlag):
    """Access rights of an emulated memory region."""

    NONE = 0
    READ = 1
    WRITE = 2
    EXEC = 4
    READ_WRITE = READ | WRITE
    ALL = READ | WRITE | EXEC


def get_permission_string(permission: MemoryPermission) -> str:
    """Render a permission as an ``rwx``-style string."""
    permission = MemoryPermission(permission)
    return "".join(
        letter if permission & flag else "-"
        for letter, flag in (
            ("r", MemoryPermission.READ),
            ("w", MemoryPermission.WRITE),
            ("x", MemoryPermission.EXEC),
        )
    )


_NT_TO_EMULATOR = {
    PAGE_NOACCESS: MemoryPermission.NONE,
    PAGE_READONLY: MemoryPermission.READ,
    PAGE_READWRITE: MemoryPermission.READ_WRITE,
    PAGE_WRITECOPY: MemoryPermission.READ_WRITE,
    PAGE_EXECUTE: MemoryPermission.READ | MemoryPermission.EXEC,
    PAGE_EXECUTE_READ: MemoryPermission.READ | MemoryPermission.EXEC,
    PAGE_EXECUTE_READWRITE: MemoryPermission.ALL,
}


def map_nt_to_emulator_protection(nt_protection: int) -> MemoryPermission:
    """Translate an NT page protection value; the guard bit is ignored."""
    masked = nt_protection & ~PAGE_GUARD & 0xFFFFFFFF
    try:
        return _NT_TO_EMULATOR[masked]
    except KeyError:
        raise ValueError(f"Failed to map protection 0x{nt_protection:X}") from None


def map_emulator_to_nt_protection(permission: MemoryPermission) -> int:
    """Translate an emulator permission into an NT page protection value."""
    permission = MemoryPermission(permission)
    has_exec = bool(permission & MemoryPermission.EXEC)
    has_read = bool(permission & MemoryPermission.READ)
    has_write = bool(permission & MemoryPermission.WRITE)

    if not has_read:
        return PAGE_NOACCESS
    if has_exec and has_write:
        return PAGE_EXECUTE_READWRITE
    if has_exec:
        return PAGE_EXECUTE_READ
    if has_write:
        return PAGE_READWRITE
    return PAGE_READONLY