from pydantic import Field

from soup_directory.schemas.common import CamelModel


class SoupTypeCountsOut(CamelModel):
    counts: dict[str, int] = Field(default_factory=dict)
    names: dict[str, str] = Field(default_factory=dict)
    display_counts: dict[str, int] = Field(default_factory=dict)


class CityCountOut(CamelModel):
    name: str
    state: str
    count: int


class CityTotalsOut(CamelModel):
    restaurants: int = 0
    cities: int = 0


class CityCountsOut(CamelModel):
    cities: list[CityCountOut] = Field(default_factory=list)
    totals: CityTotalsOut
