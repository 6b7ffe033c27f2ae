# winemu

Pure-Python building blocks for emulating Windows user-mode processes. The package has
no runtime dependencies.

## Modules

- `winemu.memory`: `MemoryPermission` flags (`NONE`, `READ`, `WRITE`, `EXEC`,
  `READ_WRITE`, `ALL`), the NT `PAGE_*` constants, and
  `map_nt_to_emulator_protection`, `map_emulator_to_nt_protection` and
  `get_permission_string`. An NT protection with no mapping (such as
  `PAGE_EXECUTE_WRITECOPY`) raises `ValueError`; the `PAGE_GUARD` bit is ignored.
- `winemu.handles`: `Handle`, a 64-bit handle made of a 32-bit id, a 16-bit type and a
  pseudo flag (`to_bits`, `from_bits`, comparable with `int`); `HandleType`;
  `make_handle`, `make_pseudo_handle`, `get_handle_value`; the fixed pseudo handles
  `CONSOLE_HANDLE`, `STDOUT_HANDLE`, `STDIN_HANDLE`, `KNOWN_DLLS_DIRECTORY`,
  `KNOWN_DLLS_SYMLINK` and `SHARED_SECTION`; and `HandleStore`, a table of objects of
  one handle type that hands out the lowest free index. `store`, `get`, `get_by_index`,
  `erase`, `erase_value` and `find_handle` work on it; `block_mutation(True)` makes
  `store` and `erase` raise `RuntimeError`. An object with a `deleter()` method is only
  removed when that method returns true.
- `winemu.objects`: kernel objects for handle stores: `Event` (with `EventType`;
  synchronization events reset when `is_signaled()` is read), `FileObject`, `Section`
  (`is_image()`), `Semaphore`, `Port`, and `RefCountedObject`, whose `deleter()` drops
  one reference.
- `winemu.logger`: `Logger`, which writes printf-style messages wrapped in ANSI colour
  codes to a stream (stdout by default), with `print(color, ...)`, `info`, `warn`,
  `error`, `success`, `log` and `disable_output`; `Color` and `color_code`.
- `winemu.hive`: `HiveParser`, a lazy reader for registry hive (`regf`) files, and
  `HiveKey`, `HiveValue` and `HiveError`. Key and value names are stored in lower case
  and must be given in lower case.
- `winemu.registry`: `RegistryManager`, which opens the hives `SYSTEM`, `SECURITY`,
  `SAM`, `SOFTWARE`, `HARDWARE` and `NTUSER.dat` from one directory and resolves
  `\registry\machine\...` and `\registry\user\...` paths onto them
  (`CurrentControlSet` maps to `ControlSet001`). `get_key` returns a `RegistryKey` or
  `None`; `get_value` returns a `RegistryValue` or `None`.
- `winemu.mapped_module`: `MappedModule` and `ExportedSymbol`, with `is_within` and
  `find_export`.
- `winemu.pe_mapping`: `map_module_from_data`, `map_module_from_file` and
  `unmap_module`. Mapping writes the headers and sections of a 64-bit PE image into an
  emulator's memory, sets section protections, applies base relocations when the image
  cannot sit at its preferred base, and collects its exports. A failure returns `None`.
- `winemu.module_manager`: `ModuleManager`, which maps each file once (a leading
  `\??\` is stripped) and finds modules by address with `find_by_address` and
  `find_name`.
- `winemu.afd`: AFD ioctl decoding (`afd_request`, `afd_base`, `AfdRequest`), poll
  event translation between `AfdPollEvent` and host poll flags
  (`map_afd_request_events_to_socket`, `map_socket_response_events_to_afd`), and
  `parse_poll_info`, which decodes a poll request buffer into `PollInfo` and
  `PollHandleInfo`.
- `winemu.allocator`: `EmulatorAllocator`, a bump allocator inside one memory region
  (`reserve`, `copy_string`, `make_unicode_string`, `release`), `UnicodeString`,
  `read_unicode_string` and `align_up`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Examples

Handles:

```python
from winemu.handles import HandleStore, HandleType
from winemu.objects import Event

events = HandleStore(HandleType.EVENT, 0)
handle = events.store(Event(name="ready"))
assert events.get(handle).name == "ready"
assert events.erase(handle)
```

Registry hives (names in lower case):

```python
from winemu.hive import HiveParser

with HiveParser("hives/SYSTEM") as hive:
    value = hive.get_value("controlset001/control", "systemstartoptions")
    if value is not None:
        print(value.type, value.data)
```

Memory protections:

```python
from winemu.memory import get_permission_string, map_nt_to_emulator_protection

permission = map_nt_to_emulator_protection(0x20)  # PAGE_EXECUTE_READ
assert get_permission_string(permission) == "r-x"
```

## What the package does not do

The package executes no code: it has no CPU, no system-call handling, no threads and no
command to run a program. `pe_mapping`, `module_manager` and `allocator` work on an
emulator object that the caller supplies, with the methods `allocate_memory`,
`find_free_allocation_base`, `read_memory`, `write_memory`, `protect_memory` and
`release_memory` (the allocator needs only the last three). `winemu.afd` decodes
requests and translates poll events but opens no sockets.