"""Soup-type normalization shared by search filtering and counts.

Stored ``soup_type`` values are free text ("Pho", "pho-soup", "PHO", "French
Onion Soup"). Matching goes through a slug plus its ``-soup`` suffix variants so
that every spelling of the same soup lands on a common key.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")
SOUP_SUFFIX = "-soup"
ALL_SOUP_TYPES = "all"


def slugify_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _NON_ALNUM_RE.sub("-", value.strip().lower()).strip("-")


def slugify_soup_type(value: Any) -> str:
    return slugify_text(value)


def slug_variants(slug: str) -> set[str]:
    if not slug:
        return set()
    variants = {slug}
    if slug.endswith(SOUP_SUFFIX):
        stripped = slug[: -len(SOUP_SUFFIX)]
        if stripped:
            variants.add(stripped)
    elif SOUP_SUFFIX not in slug:
        variants.add(f"{slug}{SOUP_SUFFIX}")
    return variants


def soup_type_keys(value: Any) -> set[str]:
    return slug_variants(slugify_soup_type(value))


def _title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split(" ") if word)


def case_variants(value: Any) -> set[str]:
    if not isinstance(value, str):
        return set()
    trimmed = value.strip()
    if not trimmed:
        return set()
    return {trimmed, trimmed.lower(), trimmed.upper(), _title_case(trimmed)}


def display_name(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _title_case(_WHITESPACE_RE.sub(" ", value.strip()))


def soup_types_match(left: Any, right: Any) -> bool:
    return bool(soup_type_keys(left) & soup_type_keys(right))


def clean_requested_soup_types(values: Iterable[Any] | str | None) -> list[str]:
    """Trim requested filter values and drop blanks.

    Returns an empty list when the ``all`` sentinel is present, meaning no soup
    filter applies.
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    cleaned: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if not trimmed:
            continue
        if trimmed.lower() == ALL_SOUP_TYPES:
            return []
        if trimmed not in cleaned:
            cleaned.append(trimmed)
    return cleaned


def expand_filter_values(values: Iterable[str]) -> tuple[set[str], set[str]]:
    """Return (case variants, slug keys) for a list of requested soup types."""
    raw_variants: set[str] = set()
    keys: set[str] = set()
    for value in values:
        raw_variants |= case_variants(value)
        keys |= soup_type_keys(value)
    return raw_variants, keys


def restaurant_matches_soup_keys(soup_types: Iterable[Any], requested_keys: set[str]) -> bool:
    if not requested_keys:
        return True
    for soup_type in soup_types:
        if soup_type_keys(soup_type) & requested_keys:
            return True
    return False
