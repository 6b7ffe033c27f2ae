"""Building blocks for emulating Windows user-mode processes: handles, kernel objects,
registry hives, PE image mapping, AFD helpers and a region allocator."""

__version__ = "0.1.0"

__all__ = [
    "afd",
    "allocator",
    "handles",
    "hive",
    "logger",
    "mapped_module",
    "memory",
    "module_manager",
    "objects",
    "pe_mapping",
    "registry",
]