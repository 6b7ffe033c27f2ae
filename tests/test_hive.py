import struct

import pytest

from winemu.hive import HiveError, HiveKey, HiveParser

_KEY = struct.Struct("<i2s18xi4xi4xii28xhh255s")
_VALUE = struct.Struct("<i2shiiihh255s")
_KEY_SIZE = 336
_VALUE_SIZE = 280


class _HiveImage:
    def __init__(self):
        self.cells = bytearray(0x20 + _KEY_SIZE)
        self.root_fields = None

    def alloc(self, size):
        rel = len(self.cells)
        self.cells += bytes(size)
        return rel

    def put(self, rel, data):
        self.cells[rel:rel + len(data)] = data

    def write_key(self, name, values=(), subkeys=(), rel=None):
        if rel is None:
            rel = self.alloc(_KEY_SIZE)
        child_rels = [self.write_key(*child) for child in subkeys]

        if child_rels:
            list_rel = self.alloc(8 + 8 * len(child_rels))
            self.put(list_rel, struct.pack("<i2sh", -(8 + 8 * len(child_rels)), b"lf", len(child_rels)))
            for i, child in enumerate(child_rels):
                self.put(list_rel + 8 + 8 * i, struct.pack("<ii", child, 0))
        else:
            list_rel = self.alloc(16)

        value_rels = []
        for value_name, value_type, data in values:
            vrel = self.alloc(_VALUE_SIZE)
            encoded = value_name.encode("latin-1")
            if len(data) <= 4:
                size = (len(data) | 0x80000000) - (1 << 32)
                offset_field = int.from_bytes(data.ljust(4, b"\x00"), "little", signed=True)
            else:
                drel = self.alloc(len(data))
                self.put(drel, data)
                size = len(data)
                offset_field = drel - 4
            self.put(vrel, _VALUE.pack(-_VALUE_SIZE, b"vk", len(encoded), size, offset_field,
                                       value_type, 0, 0, encoded))
            value_rels.append(vrel)

        values_rel = self.alloc(4 + 4 * len(value_rels))
        for i, vrel in enumerate(value_rels):
            self.put(values_rel + 4 + 4 * i, struct.pack("<i", vrel))

        encoded_name = name.encode("latin-1")
        self.put(rel, _KEY.pack(-_KEY_SIZE, b"nk", len(child_rels), list_rel, len(value_rels),
                                values_rel, len(encoded_name), 0, encoded_name))
        if rel == 0x20:
            self.root_fields = (list_rel, len(value_rels), values_rel)
        return rel

    def to_bytes(self):
        return b"regf" + bytes(0x1000 - 4) + bytes(self.cells)


def _write_hive(path, spec):
    image = _HiveImage()
    name, values, subkeys = spec
    image.write_key(name, values, subkeys, rel=0x20)
    path.write_bytes(image.to_bytes())
    return image


SPEC = (
    "ROOT",
    [("Version", 1, b"1\x00.\x000\x00\x00\x00"), ("Answer", 4, b"\x2a\x00\x00\x00")],
    [
        ("Software", [], [("Vendor", [("Path", 1, b"C\x00:\x00\x00\x00")], [])]),
    ],
)


@pytest.fixture
def hive_file(tmp_path):
    path = tmp_path / "SOFTWARE"
    _write_hive(path, SPEC)
    return path


def test_reads_non_resident_value(hive_file):
    with HiveParser(hive_file) as parser:
        value = parser.get_value("", "version")
        assert value.data == b"1\x00.\x000\x00\x00\x00"
        assert value.type == 1
        assert value.name == "Version"


def test_reads_resident_value(hive_file):
    with HiveParser(hive_file) as parser:
        value = parser.get_value("", "answer")
        assert value.data == b"\x2a\x00\x00\x00"
        assert value.type == 4


def test_nested_subkey_with_either_separator(hive_file):
    with HiveParser(hive_file) as parser:
        assert parser.get_value("software\\vendor", "path").data == b"C\x00:\x00\x00\x00"
        assert parser.get_value("software/vendor", "path").name == "Path"


def test_missing_entries_return_none(hive_file):
    with HiveParser(hive_file) as parser:
        assert parser.get_sub_key("software\\missing") is None
        assert parser.get_sub_key("missing\\deeper") is None
        assert parser.get_value("software\\vendor", "nothing") is None
        assert parser.get_value("missing", "path") is None


def test_value_data_is_cached(hive_file):
    with HiveParser(hive_file) as parser:
        first = parser.get_value("", "version")
        assert parser.get_value("", "version") is first


def test_hive_key_lists_lowercase_sub_keys(tmp_path):
    path = tmp_path / "hive"
    image = _write_hive(path, SPEC)
    with open(path, "rb") as file:
        root = HiveKey(*image.root_fields)
        sub_keys = root.get_sub_keys(file)
        assert sorted(sub_keys) == ["software"]
        vendor = sub_keys["software"].get_sub_key(file, "vendor")
        assert vendor.get_value(file, "path").data == b"C\x00:\x00\x00\x00"


def test_invalid_signature(tmp_path):
    path = tmp_path / "bad"
    path.write_bytes(b"nope" + bytes(0x2000))
    with pytest.raises(HiveError, match="Invalid signature"):
        HiveParser(path)


def test_missing_file(tmp_path):
    with pytest.raises(HiveError, match="Bad hive file"):
        HiveParser(tmp_path / "absent")


def test_truncated_file(tmp_path):
    path = tmp_path / "short"
    path.write_bytes(b"regf" + bytes(0x1010))
    with pytest.raises(HiveError, match="Failed to read file data"):
        HiveParser(path)


def test_read_after_close_fails(hive_file):
    parser = HiveParser(hive_file)
    parser.close()
    with pytest.raises(HiveError):
        parser.get_value("", "version")