from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterator

logger = logging.getLogger(__name__)

# Group containers scanned on every red country of a parsed mission file.
GROUP_KINDS = ("plane", "helicopter", "vehicle", "ship", "static")


def _as_list(value: Any) -> list[Any]:
    # Parsed mission tables arrive either as lists or as index-keyed maps.
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return list(value.values())
    return []


def _iter_red_unit_types(mission_data: Any) -> Iterator[str]:
    countries = None
    if isinstance(mission_data, dict):
        countries = ((mission_data.get("coalition") or {}).get("red") or {}).get("country")
    if not countries:
        logger.warning("no red coalition country data in mission")
        return

    for country in _as_list(countries):
        if not isinstance(country, dict):
            continue
        for kind in GROUP_KINDS:
            container = country.get(kind)
            groups = container.get("group") if isinstance(container, dict) else None
            for group in _as_list(groups):
                if not isinstance(group, dict):
                    continue
                for unit in _as_list(group.get("units")):
                    if isinstance(unit, dict) and unit.get("type"):
                        yield str(unit["type"])


def extract_red_coalition_unit_types(mission_data: Any) -> list[str]:
    """
    Unique red coalition unit type names (matching unit_types.type_name), in
    first-seen order.
    """
    unit_types = list(dict.fromkeys(_iter_red_unit_types(mission_data)))
    logger.debug("red coalition unit types extracted", extra={"count": len(unit_types)})
    return unit_types


def extract_red_coalition_unit_counts(mission_data: Any) -> dict[str, int]:
    return dict(Counter(_iter_red_unit_types(mission_data)))
