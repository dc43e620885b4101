from datetime import datetime

from pydantic import Field

from soup_directory.schemas.common import CamelModel


class SoupOut(CamelModel):
    id: str
    restaurant_id: str
    soup_type: str | None = None
    name: str | None = None
    description: str | None = None
    price: float | None = None
    dietary_tags: list[str] = Field(default_factory=list)


class RestaurantOut(CamelModel):
    id: str
    name: str
    slug: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    phone: str | None = None
    website: str | None = None
    cuisine: str | None = None
    description: str | None = None
    rating: float | None = None
    review_count: int = 0
    price_range: str | None = None
    is_featured: bool = False
    owner_id: str | None = None
    owner_org_id: str | None = None
    is_verified: bool = False
    verified_at: datetime | None = None
    is_active: bool = True
    status: str
    created_at: datetime
    updated_at: datetime
    soups: list[SoupOut] = Field(default_factory=list)


class RestaurantSearchOut(CamelModel):
    restaurants: list[RestaurantOut] = Field(default_factory=list)
    total_count: int = 0
    featured_fallback: bool = False


class LocationSuggestionOut(CamelModel):
    type: str
    label: str
    value: str
    city: str
    state: str

