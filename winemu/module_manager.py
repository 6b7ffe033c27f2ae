"""Tracks the images mapped into an emulator, ordered by base address."""

from __future__ import annotations

import bisect
import os
from pathlib import Path
from typing import Any, Union

from winemu.logger import Logger
from winemu.mapped_module import MappedModule
from winemu.pe_mapping import map_module_from_file

__all__ = ["ModuleManager"]

PathLike = Union[str, "os.PathLike[str]"]

_NT_PREFIX = "\\??\\"


def _canonicalize_module_path(file: PathLike) -> Path:
    text = os.fspath(file)
    while text.startswith(_NT_PREFIX):
        text = text[len(_NT_PREFIX):]
    return Path(text).absolute().resolve(strict=True)


class ModuleManager:
    """Maps image files once each and finds them by address."""

    def __init__(self, emu: Any) -> None:
        self._emu = emu
        self._modules: dict[int, MappedModule] = {}
        self._bases: list[int] = []

    def map_module(self, file: PathLike, logger: Logger) -> MappedModule | None:
        """Map a file, or return it if already mapped; None if mapping fails."""
        canonical_file = _canonicalize_module_path(file)

        for mod in self._modules.values():
            if mod.path == canonical_file:
                return mod

        mod = map_module_from_file(self._emu, canonical_file)
        if mod is None:
            logger.error("Failed to map %s\n", Path(os.fspath(file)).as_posix())
            return None

        logger.log("Mapped %s at 0x%llX\n", mod.path.as_posix(), mod.image_base)

        existing = self._modules.get(mod.image_base)
        if existing is not None:
            return existing

        self._modules[mod.image_base] = mod
        bisect.insort(self._bases, mod.image_base)
        return mod

    def find_by_address(self, address: int) -> MappedModule | None:
        """The module with the highest base not above the address."""
        index = bisect.bisect_right(self._bases, address)
        if index == 0:
            return None
        return self._modules[self._bases[index - 1]]

    def find_name(self, address: int) -> str:
        mod = self.find_by_address(address)
        return mod.name if mod is not None else "<N/A>"