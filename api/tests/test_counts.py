from __future__ import annotations

from soup_directory.core.launch_cities import DEFAULT_LAUNCH_CITIES, LaunchCityAllowList
from soup_directory.services.counts import summarize_city_counts, summarize_soup_type_counts

ALLOW_LIST = LaunchCityAllowList(DEFAULT_LAUNCH_CITIES)


def test_city_counts_include_every_launch_city() -> None:
    rows = [
        {"id": "1", "city": "Seattle", "state": "WA"},
        {"id": "2", "city": " seattle ", "state": "wa"},
        {"id": "2", "city": "Seattle", "state": "WA"},
        {"id": "3", "city": "Phoenix", "state": "AZ"},
        {"id": "4", "city": "Portland", "state": "OR"},
        {"id": "5", "city": None, "state": "CA"},
    ]

    summary = summarize_city_counts(rows, ALLOW_LIST)

    assert summary.cities == [
        {"name": "Seattle", "state": "WA", "count": 2},
        {"name": "Phoenix", "state": "AZ", "count": 1},
        {"name": "Los Angeles", "state": "CA", "count": 0},
        {"name": "San Diego", "state": "CA", "count": 0},
    ]
    assert summary.total_restaurants == 3


def test_soup_type_counts_group_variants_and_display_names() -> None:
    rows = [
        {"soup_type": "Pho", "restaurant_id": "1", "city": "Seattle", "state": "WA"},
        {"soup_type": "pho soup", "restaurant_id": "2", "city": "Seattle", "state": "WA"},
        {"soup_type": "PHO", "restaurant_id": "1", "city": "Seattle", "state": "WA"},
        {"soup_type": "Clam Chowder", "restaurant_id": "3", "city": "San Diego", "state": "CA"},
        {"soup_type": "Pho", "restaurant_id": "9", "city": "Portland", "state": "OR"},
        {"soup_type": "", "restaurant_id": "4", "city": "Seattle", "state": "WA"},
        {"soup_type": None, "restaurant_id": "5", "city": "Seattle", "state": "WA"},
        {"soup_type": "Ramen", "restaurant_id": "6", "city": None, "state": "WA"},
    ]

    summary = summarize_soup_type_counts(rows, ALLOW_LIST)

    assert summary.counts == {
        "pho": 2,
        "pho-soup": 2,
        "clam-chowder": 1,
        "clam-chowder-soup": 1,
    }
    assert summary.names["pho"] == "Pho"
    assert summary.names["clam-chowder-soup"] == "Clam Chowder"
    assert summary.display_counts == {"Pho": 1, "Pho Soup": 1, "Clam Chowder": 1}


def test_soup_type_counts_empty() -> None:
    summary = summarize_soup_type_counts([], ALLOW_LIST)
    assert summary.counts == {}
    assert summary.names == {}
    assert summary.display_counts == {}
