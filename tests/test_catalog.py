import pytest

from core.catalog import CATALOG_FILE, AssetLibrary, Catalog, parse_catalog


def test_bundled_catalog_matches_builtin():
    bundled = Catalog.load(CATALOG_FILE)
    builtin = Catalog.default()
    assert bundled.names() == builtin.names()
    assert bundled.get("neu") == builtin.get("Neu")


def test_missing_file_falls_back_to_builtin(tmp_path):
    catalog = Catalog.load(tmp_path / "nope.yaml")
    assert len(catalog) == 5
    assert catalog.get("TURQUOISE").attack2.name == "Petal Bullet"


def test_duplicate_names_rejected():
    text = """
Gar: {health: 1, price: 1, attack1: {name: a, damage: 1}, attack2: {name: b, damage: 2}}
gar: {health: 1, price: 1, attack1: {name: a, damage: 1}, attack2: {name: b, damage: 2}}
"""
    with pytest.raises(ValueError):
        Catalog(parse_catalog(text))


def test_move_needs_a_name():
    with pytest.raises(ValueError):
        parse_catalog("Gar: {attack1: {damage: 5}, attack2: {name: b, damage: 2}}")


def test_battle_media_requires_both_images(tmp_path):
    assets = AssetLibrary(tmp_path)
    (tmp_path / "gar.png").write_bytes(b"png")
    assert assets.image_path_for("Gar") == tmp_path / "gar.png"
    assert assets.battle_media("Gar", "Neu") == []

    (tmp_path / "neu.png").write_bytes(b"png")
    assert assets.battle_media("Gar", "Neu") == [tmp_path / "gar.png", tmp_path / "neu.png"]
