from pathlib import Path

from winemu.mapped_module import ExportedSymbol, MappedModule


def make_module():
    return MappedModule(
        name="demo.dll",
        path=Path("demo.dll"),
        image_base=0x10000,
        size_of_image=0x3000,
        entry_point=0x11000,
        exports=[
            ExportedSymbol(name="first", ordinal=0, rva=0x1000, address=0x11000),
            ExportedSymbol(name="second", ordinal=1, rva=0x1010, address=0x11010),
            ExportedSymbol(name="first", ordinal=2, rva=0x1020, address=0x11020),
        ],
    )


def test_is_within_includes_base():
    mod = make_module()
    assert mod.is_within(mod.image_base) is True


def test_is_within_excludes_end():
    mod = make_module()
    assert mod.is_within(mod.image_base + mod.size_of_image) is False
    assert mod.is_within(mod.image_base + mod.size_of_image - 1) is True


def test_is_within_below_base():
    mod = make_module()
    assert mod.is_within(mod.image_base - 1) is False


def test_find_export_returns_address():
    mod = make_module()
    assert mod.find_export("second") == 0x11010


def test_find_export_returns_first_match():
    mod = make_module()
    assert mod.find_export("first") == 0x11000


def test_find_export_missing_is_zero():
    mod = make_module()
    assert mod.find_export("absent") == 0


def test_defaults_are_independent():
    one = MappedModule()
    two = MappedModule()
    one.exports.append(ExportedSymbol(name="x"))
    one.address_names[1] = "x"
    assert two.exports == []
    assert two.address_names == {}