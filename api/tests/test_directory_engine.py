from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

import pytest

from soup_directory.core.launch_cities import DEFAULT_LAUNCH_CITIES, LaunchCityAllowList
from soup_directory.services.directory import (
    DirectoryFilters,
    DirectoryQueryEngine,
    RestaurantPredicate,
    build_location_suggestions,
    build_predicate,
    resolve_sort,
)
from soup_directory.services.store import InMemoryRepository

T = TypeVar("T")
ALLOW_LIST = LaunchCityAllowList(DEFAULT_LAUNCH_CITIES)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


class RecordingRepository(InMemoryRepository):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    async def list_restaurant_ids_for_soup_types(self, **kwargs: Any) -> set[str]:
        self.calls.append("soup_ids")
        return await super().list_restaurant_ids_for_soup_types(**kwargs)

    async def count_restaurants(self, predicate: RestaurantPredicate) -> int | None:
        self.calls.append("count")
        return await super().count_restaurants(predicate)

    async def list_restaurants(self, predicate: RestaurantPredicate, **kwargs: Any) -> list[dict[str, Any]]:
        self.calls.append("page")
        return await super().list_restaurants(predicate, **kwargs)


class CountlessRepository(InMemoryRepository):
    async def count_restaurants(self, predicate: RestaurantPredicate) -> int | None:
        return None


class LooseSoupRepository(InMemoryRepository):
    """Backend whose soup lookup over-includes and cannot match slug variants exactly."""

    soup_filter_is_exact = False

    async def list_restaurant_ids_for_soup_types(self, *, raw_variants: set[str], slug_keys: set[str]) -> set[str]:
        return set(self.restaurants)


@pytest.fixture
def repository() -> RecordingRepository:
    repo = RecordingRepository()
    ramen = repo.add_restaurant(id="a", name="Ramen House", city="Los Angeles", state="CA", rating=4.5)
    repo.add_soup(ramen["id"], "Ramen")
    repo.add_restaurant(id="b", name="Bare Tables", city="Los Angeles", state="CA", rating=4.9)
    pho = repo.add_restaurant(id="c", name="Pho Real", city="Seattle", state="WA", rating=4.1, price_range="$")
    repo.add_soup(pho["id"], "pho-soup")
    chowder = repo.add_restaurant(
        id="d",
        name="Chowder Hut",
        city="San Diego",
        state="CA",
        rating=3.8,
        price_range="$$",
        is_featured=True,
    )
    repo.add_soup(chowder["id"], "Clam Chowder")
    elsewhere = repo.add_restaurant(id="e", name="Ramen Elsewhere", city="Portland", state="OR", rating=5.0)
    repo.add_soup(elsewhere["id"], "Ramen")
    hidden = repo.add_restaurant(id="f", name="Gone Ramen", city="Phoenix", state="AZ", is_active=False, status="removed")
    repo.add_soup(hidden["id"], "Ramen")
    return repo


def _ids(rows: list[dict[str, Any]]) -> list[str]:
    return [row["id"] for row in rows]


def test_soup_filter_returns_only_restaurants_with_that_soup(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(soup_types=["Ramen"])))

    assert _ids(result.rows) == ["a"]
    assert result.total_count == 1


def test_soup_filter_matches_across_case_and_suffix_variants(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(soup_types=["PHO"])))

    assert _ids(result.rows) == ["c"]
    assert result.total_count == 1
    assert result.rows[0]["soups"][0]["soup_type"] == "pho-soup"


def test_soup_filter_with_no_matching_soups_stops_early(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(soup_types=["Gazpacho"])))

    assert result.rows == []
    assert result.total_count == 0
    assert repository.calls == ["soup_ids"]


def test_all_sentinel_disables_soup_filter(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(soup_types=["all", "Ramen"])))

    assert result.total_count == 4
    assert "soup_ids" not in repository.calls


def test_empty_filters_return_allow_listed_live_rows_sorted_by_rating(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters()))

    assert _ids(result.rows) == ["b", "a", "c", "d"]
    assert result.total_count == 4


def test_city_outside_allow_list_returns_nothing_without_querying(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(city="Nowhereville", state="ZZ")))

    assert result.rows == []
    assert result.total_count == 0
    assert repository.calls == []


def test_state_filter_narrows_launch_cities(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(state="ca")))

    assert sorted(_ids(result.rows)) == ["a", "b", "d"]


def test_rating_price_and_featured_filters(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    assert _ids(_run(engine.search(DirectoryFilters(min_rating=4.5))).rows) == ["b", "a"]
    assert _ids(_run(engine.search(DirectoryFilters(price_range="$$"))).rows) == ["d"]
    assert _ids(_run(engine.search(DirectoryFilters(price_range=["$", "$$"]))).rows) == ["c", "d"]
    assert _ids(_run(engine.search(DirectoryFilters(featured_only=True))).rows) == ["d"]


def test_location_matches_city_or_name_substring(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    assert _ids(_run(engine.search(DirectoryFilters(location="seat"))).rows) == ["c"]
    assert _ids(_run(engine.search(DirectoryFilters(location="chowder"))).rows) == ["d"]


def test_location_is_ignored_when_city_is_given(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(city="Los Angeles", location="chowder")))

    assert sorted(_ids(result.rows)) == ["a", "b"]


def test_pagination_keeps_total_count(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(limit=2, offset=2)))

    assert _ids(result.rows) == ["c", "d"]
    assert result.total_count == 4


def test_zero_count_skips_page_query(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(min_rating=4.95)))

    assert result.total_count == 0
    assert repository.calls == ["count"]


def test_unknown_sort_falls_back_to_rating_desc(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(sort_by="image_url", sort_order="asc")))

    assert _ids(result.rows) == ["b", "a", "c", "d"]


def test_name_sort_ascending(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(sort_by="name", sort_order="asc")))

    assert [row["name"] for row in result.rows] == ["Bare Tables", "Chowder Hut", "Pho Real", "Ramen House"]


def test_count_falls_back_to_distinct_ids() -> None:
    repo = CountlessRepository()
    repo.add_restaurant(id="a", name="A", city="Seattle", state="WA")
    repo.add_restaurant(id="b", name="B", city="Phoenix", state="AZ")
    engine = DirectoryQueryEngine(repo, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters()))

    assert result.total_count == 2


def test_second_pass_filters_page_for_inexact_backend() -> None:
    repo = LooseSoupRepository()
    ramen = repo.add_restaurant(id="a", name="Ramen House", city="Seattle", state="WA", rating=4.0)
    repo.add_soup(ramen["id"], "ramen soup")
    repo.add_restaurant(id="b", name="No Soup", city="Seattle", state="WA", rating=5.0)
    engine = DirectoryQueryEngine(repo, ALLOW_LIST)

    result = _run(engine.search(DirectoryFilters(soup_types=["Ramen"])))

    assert _ids(result.rows) == ["a"]
    assert result.total_count == 1


def test_resolve_sort() -> None:
    assert resolve_sort("name", "ASC") == ("name", "asc")
    assert resolve_sort("name", "sideways") == ("name", "desc")
    assert resolve_sort("bogus", "asc") == ("rating", "desc")
    assert resolve_sort(None, None) == ("rating", "desc")


def test_build_predicate_normalizes_price_ranges() -> None:
    predicate = build_predicate(DirectoryFilters(price_range=[" $ ", "$", ""]), ALLOW_LIST)
    assert predicate.price_ranges == ("$",)
    assert predicate.restrict_ids is None


def test_predicate_requires_visible_restaurant() -> None:
    predicate = RestaurantPredicate(cities=tuple(ALLOW_LIST))
    row = {"id": "x", "city": "Seattle", "state": "WA", "is_active": True, "status": "live"}

    assert predicate.matches(row)
    assert not predicate.matches({**row, "is_active": False})
    assert not predicate.matches({**row, "status": "suspended"})
    assert not predicate.matches({**row, "city": None})


def test_location_suggestions(repository: RecordingRepository) -> None:
    engine = DirectoryQueryEngine(repository, ALLOW_LIST)

    assert _run(engine.suggest_locations("se")) == []
    suggestions = _run(engine.suggest_locations("seattle"))

    assert suggestions[0] == {
        "type": "location",
        "label": "Seattle, WA",
        "value": "Seattle, WA",
        "city": "Seattle",
        "state": "WA",
    }
    assert suggestions[1]["type"] == "restaurant"
    assert suggestions[1]["label"] == "Pho Real"


def test_build_location_suggestions_caps_results() -> None:
    rows = [{"id": str(index), "name": f"Soup {index}", "city": f"City {index}", "state": "CA"} for index in range(20)]
    assert len(build_location_suggestions(rows)) == 15
