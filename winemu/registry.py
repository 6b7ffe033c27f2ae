"""Registry view over a set of hive files."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from winemu.hive import HiveParser

__all__ = ["RegistryKey", "RegistryValue", "RegistryManager"]

PathLike = Union[str, "os.PathLike[str]"]
Parts = tuple[str, ...]

_ROOT = "\\"
_SEPARATORS = re.compile(r"[\\/]")
_REGISTRY: Parts = (_ROOT, "registry")
_MACHINE: Parts = _REGISTRY + ("machine",)

_HIVES = (
    (_MACHINE + ("system",), "SYSTEM"),
    (_MACHINE + ("security",), "SECURITY"),
    (_MACHINE + ("sam",), "SAM"),
    (_MACHINE + ("software",), "SOFTWARE"),
    (_MACHINE + ("hardware",), "HARDWARE"),
    (_REGISTRY + ("user",), "NTUSER.dat"),
)


def _parts(path: PathLike) -> Parts:
    text = os.fspath(path)
    rooted = text[:1] in ("\\", "/")
    parts: list[str] = []
    for part in _SEPARATORS.split(text):
        if part in ("", "."):
            continue
        if part == "..":
            if parts and parts[-1] != "..":
                parts.pop()
                continue
            if rooted:
                continue
        parts.append(part)
    return ((_ROOT,) if rooted else ()) + tuple(parts)


def _canonicalize(path: PathLike) -> Parts:
    return tuple(part.lower() for part in _parts(path))


def _join(parts: Parts) -> str:
    if parts and parts[0] == _ROOT:
        return _ROOT + "\\".join(parts[1:])
    return "\\".join(parts)


def _is_subpath(root: Parts, path: Parts) -> bool:
    return path[: len(root)] == root


@dataclass
class RegistryKey:
    """An opened key: the hive's path and the key's path inside it."""

    hive: str = ""
    path: str = ""


@dataclass(frozen=True)
class RegistryValue:
    type: int
    name: str
    data: bytes


class RegistryManager:
    """Resolves registry paths to the hive files found in one directory."""

    def __init__(self, hive_path: PathLike | None = None) -> None:
        self._hive_path = Path(hive_path).absolute() if hive_path is not None else None
        self._hives: dict[Parts, HiveParser] = {}
        self._path_mapping: dict[Parts, Parts] = {}
        if self._hive_path is not None:
            self._setup()

    @property
    def hive_path(self) -> Path | None:
        return self._hive_path

    def _setup(self) -> None:
        self._close()
        self._path_mapping.clear()
        assert self._hive_path is not None
        try:
            for key, file_name in _HIVES:
                self._hives[key] = HiveParser(self._hive_path / file_name)
        except Exception:
            self._close()
            raise
        system = _MACHINE + ("system",)
        self.add_path_mapping(_join(system + ("CurrentControlSet",)), _join(system + ("ControlSet001",)))

    def _close(self) -> None:
        for parser in self._hives.values():
            parser.close()
        self._hives.clear()

    def __enter__(self) -> RegistryManager:
        return self

    def __exit__(self, *args: object) -> None:
        self._close()

    def _normalize(self, path: PathLike) -> Parts:
        canonical = _canonicalize(path)
        for source, target in self._path_mapping.items():
            if _is_subpath(source, canonical):
                return target + canonical[len(source):]
        return canonical

    def normalize_path(self, path: PathLike) -> str:
        """Lower-case, lexically normal form of a path with mappings applied."""
        return _join(self._normalize(path))

    def add_path_mapping(self, key: PathLike, value: PathLike) -> None:
        self._path_mapping[_canonicalize(key)] = _canonicalize(value)

    def get_key(self, key: PathLike) -> RegistryKey | None:
        normal_key = self._normalize(key)

        if _is_subpath(normal_key, _MACHINE):
            return RegistryKey(hive=_join(normal_key))

        for hive, parser in self._hives.items():
            if _is_subpath(hive, normal_key):
                break
        else:
            return None

        relative = normal_key[len(hive):]
        reg_key = RegistryKey(hive=_join(hive), path=_join(relative))
        if not relative:
            return reg_key
        if parser.get_sub_key(reg_key.path) is None:
            return None
        return reg_key

    def get_value(self, key: RegistryKey, name: str) -> RegistryValue | None:
        parser = self._hives.get(_canonicalize(key.hive))
        if parser is None:
            return None
        entry = parser.get_value(key.path, name.lower())
        if entry is None:
            return None
        return RegistryValue(type=entry.type, name=entry.name, data=entry.data)