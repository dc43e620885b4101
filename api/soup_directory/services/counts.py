from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from soup_directory.core.launch_cities import LaunchCityAllowList
from soup_directory.services.soup_types import display_name, slugify_soup_type, slug_variants


@dataclass(slots=True)
class SoupTypeCounts:
    counts: dict[str, int] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)
    display_counts: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class CityCounts:
    cities: list[dict[str, Any]] = field(default_factory=list)
    total_restaurants: int = 0


def summarize_city_counts(rows: Iterable[Mapping[str, Any]], allow_list: LaunchCityAllowList) -> CityCounts:
    """Count distinct visible restaurants per launch city.

    ``rows`` carry ``id``, ``city`` and ``state``. Rows missing either location
    field or outside the allow-list are skipped. Every launch city is reported,
    including those with no restaurants yet.
    """
    restaurant_ids: dict[tuple[str, str], set[str]] = {city.key: set() for city in allow_list}

    for row in rows:
        restaurant_id = row.get("id")
        city = row.get("city")
        state = row.get("state")
        if not restaurant_id or not isinstance(city, str) or not isinstance(state, str):
            continue
        key = (city.strip().lower(), state.strip().upper())
        if key not in restaurant_ids:
            continue
        restaurant_ids[key].add(str(restaurant_id))

    cities = [
        {"name": city.name, "state": city.state, "count": len(restaurant_ids[city.key])}
        for city in allow_list
    ]
    cities.sort(key=lambda item: (-item["count"], item["name"]))
    return CityCounts(cities=cities, total_restaurants=sum(item["count"] for item in cities))


def summarize_soup_type_counts(
    rows: Iterable[Mapping[str, Any]],
    allow_list: LaunchCityAllowList,
) -> SoupTypeCounts:
    """Count distinct restaurants per soup-type slug variant and display name.

    ``rows`` carry ``soup_type``, ``restaurant_id`` and the owning restaurant's
    ``city`` and ``state``.
    """
    by_variant: dict[str, set[str]] = {}
    names: dict[str, str] = {}
    by_display: dict[str, set[str]] = {}

    for row in rows:
        slug = slugify_soup_type(row.get("soup_type"))
        restaurant_id = row.get("restaurant_id")
        if not slug or not restaurant_id:
            continue
        if not allow_list.contains(row.get("city"), row.get("state")):
            continue

        restaurant_key = str(restaurant_id)
        label = display_name(row.get("soup_type"))
        for variant in sorted(slug_variants(slug)):
            by_variant.setdefault(variant, set()).add(restaurant_key)
            if label and variant not in names:
                names[variant] = label
        if label:
            by_display.setdefault(label, set()).add(restaurant_key)

    return SoupTypeCounts(
        counts={variant: len(ids) for variant, ids in by_variant.items()},
        names=names,
        display_counts={label: len(ids) for label, ids in by_display.items()},
    )
