"""Filtered restaurant search over the published directory.

Every read is scoped to the launch-city allow-list first, then narrowed by the
caller's filters. Soup-type filters resolve to a set of restaurant ids before
the restaurant query runs, and the fetched page is re-checked in Python against
the normalized soup keys.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from opentelemetry import trace

from soup_directory.core.launch_cities import LaunchCity, LaunchCityAllowList
from soup_directory.services.soup_types import (
    clean_requested_soup_types,
    expand_filter_values,
    restaurant_matches_soup_keys,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SORT_COLUMNS = ("rating", "name", "review_count", "created_at", "price_range")
DEFAULT_SORT_BY = "rating"
DEFAULT_SORT_ORDER = "desc"
LOCATION_SUGGESTION_MIN_LENGTH = 3
LOCATION_SUGGESTION_SCAN_LIMIT = 25
LOCATION_SUGGESTION_LIMIT = 15


@dataclass(slots=True)
class DirectoryFilters:
    city: str | None = None
    state: str | None = None
    location: str | None = None
    soup_types: list[str] = field(default_factory=list)
    min_rating: float | None = None
    price_range: list[str] | str | None = None
    limit: int = 10
    offset: int = 0
    sort_by: str = DEFAULT_SORT_BY
    sort_order: str = DEFAULT_SORT_ORDER
    featured_only: bool = False


@dataclass(frozen=True, slots=True)
class RestaurantPredicate:
    """Conjunction of filters a visible restaurant must satisfy."""

    cities: tuple[LaunchCity, ...]
    restrict_ids: frozenset[str] | None = None
    location: str | None = None
    min_rating: float | None = None
    price_ranges: tuple[str, ...] = ()
    featured_only: bool = False

    def matches(self, restaurant: Mapping[str, Any]) -> bool:
        if restaurant.get("is_active") is not True or restaurant.get("status") != "live":
            return False

        city = restaurant.get("city")
        state = restaurant.get("state")
        if not isinstance(city, str) or not isinstance(state, str):
            return False
        key = (city.strip().lower(), state.strip().upper())
        if not any(candidate.key == key for candidate in self.cities):
            return False

        if self.restrict_ids is not None and str(restaurant.get("id")) not in self.restrict_ids:
            return False

        if self.location:
            needle = self.location.lower()
            name = restaurant.get("name") or ""
            if needle not in city.lower() and needle not in str(name).lower():
                return False

        if self.min_rating is not None:
            rating = restaurant.get("rating")
            if rating is None or float(rating) < self.min_rating:
                return False

        if self.price_ranges and restaurant.get("price_range") not in self.price_ranges:
            return False

        if self.featured_only and restaurant.get("is_featured") is not True:
            return False

        return True


@dataclass(slots=True)
class SearchResult:
    rows: list[dict[str, Any]]
    total_count: int


class DirectoryBackend(Protocol):
    # True when list_restaurant_ids_for_soup_types already applies the same
    # slug-variant rule as the in-memory second pass.
    soup_filter_is_exact: bool

    async def list_restaurant_ids_for_soup_types(
        self,
        *,
        raw_variants: set[str],
        slug_keys: set[str],
    ) -> set[str]: ...

    async def count_restaurants(self, predicate: RestaurantPredicate) -> int | None: ...

    async def list_restaurant_ids(self, predicate: RestaurantPredicate) -> list[str]: ...

    async def list_restaurants(
        self,
        predicate: RestaurantPredicate,
        *,
        sort_by: str,
        sort_order: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]: ...


def resolve_sort(sort_by: str | None, sort_order: str | None) -> tuple[str, str]:
    if sort_by not in SORT_COLUMNS:
        return DEFAULT_SORT_BY, DEFAULT_SORT_ORDER
    order = sort_order.strip().lower() if isinstance(sort_order, str) else ""
    if order not in {"asc", "desc"}:
        order = DEFAULT_SORT_ORDER
    return sort_by, order


def _normalize_price_ranges(value: list[str] | str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    ranges: list[str] = []
    for item in value:
        if isinstance(item, str) and item.strip() and item.strip() not in ranges:
            ranges.append(item.strip())
    return tuple(ranges)


def _clean_text(value: str | None) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def build_predicate(
    filters: DirectoryFilters,
    allowed: LaunchCityAllowList,
    restrict_ids: frozenset[str] | None = None,
) -> RestaurantPredicate:
    location = _clean_text(filters.location)
    # city/state already narrowed the allow-list; location on top would over-constrain.
    if _clean_text(filters.city) or _clean_text(filters.state):
        location = None
    return RestaurantPredicate(
        cities=tuple(allowed),
        restrict_ids=restrict_ids,
        location=location,
        min_rating=filters.min_rating,
        price_ranges=_normalize_price_ranges(filters.price_range),
        featured_only=bool(filters.featured_only),
    )


def restaurant_soup_types(restaurant: Mapping[str, Any]) -> list[str]:
    soup_types: list[str] = []
    for soup in restaurant.get("soups") or []:
        if not isinstance(soup, Mapping):
            continue
        soup_type = soup.get("soup_type")
        if isinstance(soup_type, str) and soup_type and soup_type not in soup_types:
            soup_types.append(soup_type)
    return soup_types


class DirectoryQueryEngine:
    def __init__(self, backend: DirectoryBackend, allow_list: LaunchCityAllowList) -> None:
        self.backend = backend
        self.allow_list = allow_list

    async def search(self, filters: DirectoryFilters) -> SearchResult:
        with tracer.start_as_current_span("directory.search") as span:
            result = await self._search(filters)
            span.set_attribute("directory.total_count", result.total_count)
            span.set_attribute("directory.page_size", len(result.rows))
            return result

    async def _search(self, filters: DirectoryFilters) -> SearchResult:
        allowed = self.allow_list.narrow(city=filters.city, state=filters.state)
        if not allowed:
            logger.info(
                "directory search outside launch cities city=%s state=%s",
                filters.city,
                filters.state,
            )
            return SearchResult(rows=[], total_count=0)

        requested_soup_types = clean_requested_soup_types(filters.soup_types)
        requested_keys: set[str] = set()
        restrict_ids: frozenset[str] | None = None
        if requested_soup_types:
            raw_variants, requested_keys = expand_filter_values(requested_soup_types)
            matched_ids = await self.backend.list_restaurant_ids_for_soup_types(
                raw_variants=raw_variants,
                slug_keys=requested_keys,
            )
            if not matched_ids:
                logger.info("directory search matched no soups soup_types=%s", requested_soup_types)
                return SearchResult(rows=[], total_count=0)
            restrict_ids = frozenset(str(restaurant_id) for restaurant_id in matched_ids)

        predicate = build_predicate(filters, allowed, restrict_ids)

        total_count = await self.backend.count_restaurants(predicate)
        if total_count is None:
            total_count = len(set(await self.backend.list_restaurant_ids(predicate)))
        if total_count == 0:
            return SearchResult(rows=[], total_count=0)

        sort_by, sort_order = resolve_sort(filters.sort_by, filters.sort_order)
        offset = max(0, filters.offset)
        limit = filters.limit if filters.limit > 0 else total_count
        rows = await self.backend.list_restaurants(
            predicate,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )

        if requested_soup_types:
            rows = [row for row in rows if restaurant_matches_soup_keys(restaurant_soup_types(row), requested_keys)]
            if not self.backend.soup_filter_is_exact:
                # Only exact while every soup match fits on this page.
                total_count = len(rows)

        return SearchResult(rows=rows, total_count=total_count)

    async def suggest_locations(self, query: str | None) -> list[dict[str, str]]:
        needle = _clean_text(query)
        if not needle or len(needle) < LOCATION_SUGGESTION_MIN_LENGTH:
            return []

        predicate = RestaurantPredicate(cities=tuple(self.allow_list), location=needle)
        rows = await self.backend.list_restaurants(
            predicate,
            sort_by="name",
            sort_order="asc",
            limit=LOCATION_SUGGESTION_SCAN_LIMIT,
            offset=0,
        )
        return build_location_suggestions(rows)


def build_location_suggestions(rows: list[Mapping[str, Any]]) -> list[dict[str, str]]:
    suggestions: list[dict[str, str]] = []
    seen_locations: set[tuple[str, str]] = set()
    seen_restaurants: set[str] = set()

    for row in rows:
        city = str(row.get("city") or "").strip()
        state = str(row.get("state") or "").strip()
        if not city or not state:
            continue
        key = (city.lower(), state.upper())
        if key in seen_locations:
            continue
        seen_locations.add(key)
        label = f"{city}, {state}"
        suggestions.append({"type": "location", "label": label, "value": label, "city": city, "state": state})

    for row in rows:
        name = str(row.get("name") or "").strip()
        if not name:
            continue
        key = str(row.get("id") or name.lower())
        if key in seen_restaurants:
            continue
        seen_restaurants.add(key)
        suggestions.append(
            {
                "type": "restaurant",
                "label": name,
                "value": name,
                "city": str(row.get("city") or "").strip(),
                "state": str(row.get("state") or "").strip(),
            }
        )

    return suggestions[:LOCATION_SUGGESTION_LIMIT]
