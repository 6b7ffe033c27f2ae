import io
import struct

import pytest

from winemu.logger import Logger
from winemu.module_manager import ModuleManager

IMAGE_BASE = 0x180000000
SECOND_BASE = 0x200000000
TEXT_RVA = 0x1000
ENTRY_RVA = 0x1010
SIZE_OF_IMAGE = 0x2000


def build_pe(image_base):
    image = bytearray(0x400)
    image[0:2] = b"MZ"
    struct.pack_into("<i", image, 0x3C, 0x40)
    nt = 0x40
    struct.pack_into("<IHHIIIHH", image, nt, 0x4550, 0x8664, 1, 0, 0, 0, 240, 0x2022)
    fields = [
        0x20B, 14, 0,
        0x200, 0, 0, ENTRY_RVA, TEXT_RVA,
        image_base,
        0x1000, 0x200,
        6, 0, 0, 0, 6, 0,
        0, SIZE_OF_IMAGE, 0x200, 0,
        3, 0,
        0x100000, 0x1000, 0x100000, 0x1000,
        0, 16,
    ]
    struct.pack_into("<H2B5IQ2I6H4I2H4Q2I32I", image, nt + 24, *fields, *([0] * 32))
    struct.pack_into("<8sIIIIIIHHI", image, nt + 24 + 240, b".text", 0x200, TEXT_RVA, 0x200, 0x200, 0, 0, 0, 0, 0x60000020)
    image[0x200:0x201] = b"\xc3"
    return bytes(image)


class FakeEmulator:
    def __init__(self):
        self.regions = {}

    def allocate_memory(self, address, size, permission):
        if any(address < b + len(r) and b < address + size for b, r in self.regions.items()):
            return False
        self.regions[address] = bytearray(size)
        return True

    def find_free_allocation_base(self, size):
        return 0x7FF000000000

    def _locate(self, address, size):
        for base, region in self.regions.items():
            if base <= address and address + size <= base + len(region):
                return region, address - base
        raise RuntimeError("unmapped memory")

    def read_memory(self, address, size):
        region, offset = self._locate(address, size)
        return bytes(region[offset:offset + size])

    def write_memory(self, address, data):
        region, offset = self._locate(address, len(data))
        region[offset:offset + len(data)] = data

    def protect_memory(self, address, size, permission):
        pass

    def release_memory(self, address, size):
        return self.regions.pop(address, None) is not None


@pytest.fixture
def files(tmp_path):
    first = tmp_path / "a.dll"
    first.write_bytes(build_pe(IMAGE_BASE))
    second = tmp_path / "b.dll"
    second.write_bytes(build_pe(SECOND_BASE))
    return first, second


def make_logger():
    stream = io.StringIO()
    return Logger(stream), stream


def test_map_module_returns_module(files):
    manager = ModuleManager(FakeEmulator())
    logger, stream = make_logger()
    mod = manager.map_module(files[0], logger)
    assert mod.image_base == IMAGE_BASE
    assert mod.name == "a.dll"
    assert mod.path == files[0].resolve()
    assert f"Mapped {files[0].resolve().as_posix()} at 0x{IMAGE_BASE:X}" in stream.getvalue()


def test_map_module_twice_returns_same_object(files):
    manager = ModuleManager(FakeEmulator())
    logger, _ = make_logger()
    first = manager.map_module(files[0], logger)
    again = manager.map_module(str(files[0]), logger)
    assert again is first


def test_nt_prefix_is_stripped(files):
    manager = ModuleManager(FakeEmulator())
    logger, _ = make_logger()
    first = manager.map_module(files[0], logger)
    prefixed = manager.map_module("\\??\\" + str(files[0]), logger)
    assert prefixed is first


def test_find_by_address(files):
    manager = ModuleManager(FakeEmulator())
    logger, _ = make_logger()
    first = manager.map_module(files[0], logger)
    second = manager.map_module(files[1], logger)
    assert manager.find_by_address(IMAGE_BASE) is first
    assert manager.find_by_address(IMAGE_BASE + TEXT_RVA) is first
    assert manager.find_by_address(SECOND_BASE + 5) is second
    assert manager.find_by_address(IMAGE_BASE - 1) is None


def test_find_by_address_uses_nearest_lower_base(files):
    manager = ModuleManager(FakeEmulator())
    logger, _ = make_logger()
    first = manager.map_module(files[0], logger)
    manager.map_module(files[1], logger)
    assert manager.find_by_address(IMAGE_BASE + SIZE_OF_IMAGE + 0x10) is first


def test_find_name(files):
    manager = ModuleManager(FakeEmulator())
    logger, _ = make_logger()
    manager.map_module(files[1], logger)
    assert manager.find_name(SECOND_BASE + ENTRY_RVA) == "b.dll"
    assert manager.find_name(0) == "<N/A>"


def test_empty_manager_finds_nothing():
    manager = ModuleManager(FakeEmulator())
    assert manager.find_by_address(IMAGE_BASE) is None
    assert manager.find_name(IMAGE_BASE) == "<N/A>"


def test_invalid_image_logs_error(tmp_path):
    path = tmp_path / "bad.dll"
    path.write_bytes(b"not an image")
    manager = ModuleManager(FakeEmulator())
    logger, stream = make_logger()
    assert manager.map_module(path, logger) is None
    assert "Failed to map" in stream.getvalue()
    assert manager.find_by_address(IMAGE_BASE) is None


def test_missing_file_raises(tmp_path):
    manager = ModuleManager(FakeEmulator())
    logger, _ = make_logger()
    with pytest.raises(OSError):
        manager.map_module(tmp_path / "missing.dll", logger)