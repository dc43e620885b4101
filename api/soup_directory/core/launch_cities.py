import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from soup_directory.core.config import get_settings


@dataclass(frozen=True, slots=True)
class LaunchCity:
    name: str
    state: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.name.strip().lower(), self.state.strip().upper())


DEFAULT_LAUNCH_CITIES: tuple[LaunchCity, ...] = (
    LaunchCity(name="Los Angeles", state="CA"),
    LaunchCity(name="San Diego", state="CA"),
    LaunchCity(name="Seattle", state="WA"),
    LaunchCity(name="Phoenix", state="AZ"),
)


class LaunchCityAllowList:
    """The (city, state) pairs every directory read is scoped to."""

    def __init__(self, cities: tuple[LaunchCity, ...] | list[LaunchCity]) -> None:
        unique: dict[tuple[str, str], LaunchCity] = {}
        for city in cities:
            unique.setdefault(city.key, city)
        self.cities: tuple[LaunchCity, ...] = tuple(unique.values())

    def __iter__(self):
        return iter(self.cities)

    def __len__(self) -> int:
        return len(self.cities)

    def __bool__(self) -> bool:
        return bool(self.cities)

    @property
    def states(self) -> list[str]:
        return sorted({city.state.strip().upper() for city in self.cities})

    def contains(self, city: str | None, state: str | None) -> bool:
        if not isinstance(city, str) or not isinstance(state, str):
            return False
        if not city.strip() or not state.strip():
            return False
        key = (city.strip().lower(), state.strip().upper())
        return any(candidate.key == key for candidate in self.cities)

    def narrow(self, *, city: str | None = None, state: str | None = None) -> "LaunchCityAllowList":
        """Return the subset matching the optional city and state filters.

        A filter naming a city or state outside the allow-list yields an empty
        list, never a widened one.
        """
        normalized_city = city.strip().lower() if isinstance(city, str) and city.strip() else None
        normalized_state = state.strip().upper() if isinstance(state, str) and state.strip() else None
        selected = [
            candidate
            for candidate in self.cities
            if (normalized_city is None or candidate.key[0] == normalized_city)
            and (normalized_state is None or candidate.key[1] == normalized_state)
        ]
        return LaunchCityAllowList(selected)


def parse_launch_cities(raw_json: str | None) -> LaunchCityAllowList:
    if raw_json is None or not raw_json.strip():
        return LaunchCityAllowList(DEFAULT_LAUNCH_CITIES)

    try:
        payload: Any = json.loads(raw_json)
    except json.JSONDecodeError as exc:
        raise ValueError("launch cities config must be valid JSON") from exc

    if not isinstance(payload, list):
        raise ValueError("launch cities config must be a JSON list")

    cities: list[LaunchCity] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError("launch city entries must be objects with name and state")
        name = item.get("name")
        state = item.get("state")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("launch city name must be a non-empty string")
        if not isinstance(state, str) or len(state.strip()) != 2:
            raise ValueError("launch city state must be a 2-letter code")
        cities.append(LaunchCity(name=name.strip(), state=state.strip().upper()))
    return LaunchCityAllowList(cities)


@lru_cache
def get_launch_cities() -> LaunchCityAllowList:
    return parse_launch_cities(get_settings().launch_cities_json)
