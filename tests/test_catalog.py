import json

import pytest

from debriefer.domain.models import KillCategory, UnitSource, UnitType
from debriefer.exceptions import ConfigError, ReferentialError
from debriefer.ledger.catalog import load_catalog_file


def test_find_by_id(catalog):
    unit = catalog.find_by_id("u-t72")
    assert unit is not None
    assert unit.type_name == "T-72B"
    assert unit.kill_category == KillCategory.A2G
    assert catalog.find_by_id("missing") is None


def test_get_unknown_raises_referential(catalog):
    with pytest.raises(ReferentialError) as exc:
        catalog.get("missing")
    assert exc.value.ids == {"unit_type_id": "missing"}


def test_find_by_kill_category_orders_by_display_name(catalog):
    a2g = catalog.find_by_kill_category(KillCategory.A2G)
    assert [u.id for u in a2g] == ["u-sa11", "u-t72"]

    with_inactive = catalog.find_by_kill_category("A2G", active_only=False)
    assert [u.id for u in with_inactive] == ["u-sa11", "u-t72", "u-zsu"]


def test_seed_skips_existing_type_names(catalog):
    assert catalog.seed([catalog.get("u-t72"), catalog.get("u-ship")]) == 0
    renamed = UnitType(id="other-id", type_name="T-72B", display_name="Dup", kill_category=KillCategory.A2G)
    assert catalog.add(renamed).id == "u-t72"


def test_resolve_or_create_generic_is_idempotent(catalog):
    first = catalog.resolve_or_create_generic(KillCategory.A2G)
    second = catalog.resolve_or_create_generic("A2G")

    assert first.id == second.id
    assert first.type_name == "GENERIC_A2G"
    assert first.display_name == "Generic A2G"
    assert first.source == UnitSource.MANUAL
    assert first.is_active is True
    generics = [u for u in catalog.find_by_kill_category(KillCategory.A2G) if u.type_name == "GENERIC_A2G"]
    assert len(generics) == 1


def test_parse_generic_selection(catalog):
    assert catalog.parse_generic_selection("GENERIC_A2S") == KillCategory.A2S
    assert catalog.parse_generic_selection("GENERIC_XYZ") is None
    assert catalog.parse_generic_selection("u-mig29") is None


def test_load_catalog_file_yaml_and_json(tmp_path):
    yaml_file = tmp_path / "units.yaml"
    yaml_file.write_text(
        "units:\n"
        "  - type_name: Mi-8MT\n"
        "    display_name: Mi-8 Hip\n"
        "    category: HELICOPTER\n"
        "    kill_category: A2A\n",
        encoding="utf-8",
    )
    units = load_catalog_file(yaml_file)
    assert len(units) == 1
    assert units[0].type_name == "Mi-8MT"
    assert units[0].id

    json_file = tmp_path / "units.json"
    json_file.write_text(
        json.dumps([{"id": "u-fixed", "type_name": "BMP-2", "display_name": "BMP-2", "kill_category": "A2G"}]),
        encoding="utf-8",
    )
    assert load_catalog_file(json_file)[0].id == "u-fixed"


def test_load_catalog_file_rejects_bad_entries(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("units:\n  - type_name: Nope\n    kill_category: A2X\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_catalog_file(bad)

    empty = tmp_path / "empty.yaml"
    empty.write_text("name: nothing here\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_catalog_file(empty)
