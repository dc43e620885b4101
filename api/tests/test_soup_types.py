from __future__ import annotations

import pytest

from soup_directory.services.soup_types import (
    case_variants,
    clean_requested_soup_types,
    display_name,
    expand_filter_values,
    restaurant_matches_soup_keys,
    slug_variants,
    slugify_soup_type,
    slugify_text,
    soup_type_keys,
    soup_types_match,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("French Onion", "french-onion"),
        ("  Tom   Yum!! ", "tom-yum"),
        ("Pho", "pho"),
        ("--Clam Chowder--", "clam-chowder"),
        ("Matzo Ball Soup", "matzo-ball-soup"),
        ("", ""),
        ("   ", ""),
        (None, ""),
        (42, ""),
    ],
)
def test_slugify_soup_type(raw: object, expected: str) -> None:
    assert slugify_soup_type(raw) == expected


def test_restaurant_slugs_and_soup_slugs_share_one_rule() -> None:
    assert slugify_text("Broth & Bread San Diego CA") == "broth-bread-san-diego-ca"
    assert slugify_soup_type("  Tom   Yum!! ") == slugify_text("  Tom   Yum!! ")
    assert slugify_text(None) == ""


def test_slug_variants_adds_soup_suffix() -> None:
    assert slug_variants("pho") == {"pho", "pho-soup"}


def test_slug_variants_strips_soup_suffix() -> None:
    assert slug_variants("french-onion-soup") == {"french-onion-soup", "french-onion"}


def test_slug_variants_leaves_inner_soup_alone() -> None:
    assert slug_variants("soup-dumplings") == {"soup-dumplings", "soup-dumplings-soup"}
    assert slug_variants("chicken-soup-special") == {"chicken-soup-special"}


def test_slug_variants_empty() -> None:
    assert slug_variants("") == set()


def test_soup_type_keys_unify_spellings() -> None:
    assert soup_type_keys("Pho") == soup_type_keys("pho")
    assert "pho" in soup_type_keys("Pho Soup")
    assert soup_types_match("French Onion Soup", "french onion")
    assert soup_types_match("RAMEN", "ramen-soup")
    assert not soup_types_match("Ramen", "Pho")
    assert not soup_types_match("", "")


def test_case_variants() -> None:
    assert case_variants("  french onion ") == {"french onion", "FRENCH ONION", "French Onion"}
    assert case_variants("Pho") == {"Pho", "pho", "PHO"}
    assert case_variants("") == set()
    assert case_variants(None) == set()


def test_display_name_title_cases_and_collapses_whitespace() -> None:
    assert display_name("  tom   YUM ") == "Tom Yum"
    assert display_name("clam chowder") == "Clam Chowder"
    assert display_name(None) == ""


def test_clean_requested_soup_types_drops_blanks_and_duplicates() -> None:
    assert clean_requested_soup_types([" Ramen ", "", "Ramen", "Pho", None]) == ["Ramen", "Pho"]
    assert clean_requested_soup_types("Pho") == ["Pho"]
    assert clean_requested_soup_types(None) == []


def test_clean_requested_soup_types_all_sentinel_disables_filter() -> None:
    assert clean_requested_soup_types(["Ramen", "ALL"]) == []


def test_expand_filter_values() -> None:
    raw_variants, keys = expand_filter_values(["French Onion"])
    assert "french onion" in raw_variants
    assert "FRENCH ONION" in raw_variants
    assert keys == {"french-onion", "french-onion-soup"}


def test_restaurant_matches_soup_keys() -> None:
    _, keys = expand_filter_values(["ramen"])
    assert restaurant_matches_soup_keys(["Pho", "Ramen Soup"], keys)
    assert not restaurant_matches_soup_keys(["Pho"], keys)
    assert not restaurant_matches_soup_keys([], keys)
    assert restaurant_matches_soup_keys([], set())
