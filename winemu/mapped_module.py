"""Images mapped into emulated memory and their exported symbols."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

__all__ = ["ExportedSymbol", "MappedModule"]


@dataclass
class ExportedSymbol:
    """A named export of a mapped image."""

    name: str = ""
    ordinal: int = 0
    rva: int = 0
    address: int = 0


@dataclass
class MappedModule:
    """A PE image placed in emulated memory."""

    name: str = ""
    path: Path = field(default_factory=Path)
    image_base: int = 0
    size_of_image: int = 0
    entry_point: int = 0
    exports: list[ExportedSymbol] = field(default_factory=list)
    address_names: dict[int, str] = field(default_factory=dict)

    def is_within(self, address: int) -> bool:
        """Whether an address falls inside the mapped image."""
        return self.image_base <= address < self.image_base + self.size_of_image

    def find_export(self, export_name: str) -> int:
        """Address of the first export with this name, or 0."""
        return next((symbol.address for symbol in self.exports if symbol.name == export_name), 0)