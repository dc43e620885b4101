import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from soup_directory.api.errors import repository_http_error
from soup_directory.core.config import Settings, get_settings
from soup_directory.core.launch_cities import LaunchCityAllowList, get_launch_cities
from soup_directory.schemas.restaurants import RestaurantOut, RestaurantSearchOut
from soup_directory.services.directory import DirectoryFilters, DirectoryQueryEngine
from soup_directory.services.errors import RepositoryError
from soup_directory.services.repository import get_repository

router = APIRouter()
logger = logging.getLogger(__name__)


def get_directory_engine(
    repository=Depends(get_repository),
    allow_list: LaunchCityAllowList = Depends(get_launch_cities),
) -> DirectoryQueryEngine:
    return DirectoryQueryEngine(repository, allow_list)


def _split_multi(values: list[str] | None) -> list[str]:
    items: list[str] = []
    for value in values or []:
        for chunk in value.split(","):
            if chunk.strip():
                items.append(chunk.strip())
    return items


@router.get("", response_model=RestaurantSearchOut)
async def list_restaurants(
    city: str | None = Query(default=None, min_length=1),
    state: str | None = Query(default=None, min_length=1),
    location: str | None = Query(default=None, min_length=1),
    soup_type: list[str] | None = Query(default=None, alias="soupType"),
    rating: list[float] | None = Query(default=None),
    price_range: list[str] | None = Query(default=None, alias="priceRange"),
    limit: int | None = Query(default=None, ge=1),
    page: int = Query(default=1, ge=1),
    sort_by: str = Query(default="rating", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
    featured: bool = Query(default=False),
    settings: Settings = Depends(get_settings),
    engine: DirectoryQueryEngine = Depends(get_directory_engine),
) -> RestaurantSearchOut:
    page_size = min(limit or settings.search_default_limit, settings.search_max_limit)
    filters = DirectoryFilters(
        city=city,
        state=state,
        location=location,
        soup_types=_split_multi(soup_type),
        # Several rating boxes ticked means "at least the lowest of them".
        min_rating=min(rating) if rating else None,
        price_range=_split_multi(price_range),
        limit=page_size,
        offset=(page - 1) * page_size,
        sort_by=sort_by,
        sort_order=sort_order,
        featured_only=featured,
    )

    featured_fallback = False
    try:
        result = await engine.search(filters)
        if featured and result.total_count == 0:
            logger.info("no featured restaurants matched; falling back to top-rated")
            filters.featured_only = False
            filters.sort_by = "rating"
            filters.sort_order = "desc"
            result = await engine.search(filters)
            featured_fallback = True
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc

    return RestaurantSearchOut(
        restaurants=[RestaurantOut(**row) for row in result.rows],
        total_count=result.total_count,
        featured_fallback=featured_fallback,
    )


@router.get("/by-slug/{slug}", response_model=RestaurantOut)
async def get_restaurant_by_slug(
    slug: str,
    repository=Depends(get_repository),
    allow_list: LaunchCityAllowList = Depends(get_launch_cities),
) -> RestaurantOut:
    try:
        row = await repository.get_restaurant_by_slug(slug=slug)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    if not allow_list.contains(row.get("city"), row.get("state")):
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    return RestaurantOut(**row)


@router.get("/{restaurant_id}", response_model=RestaurantOut)
async def get_restaurant(
    restaurant_id: str,
    repository=Depends(get_repository),
    allow_list: LaunchCityAllowList = Depends(get_launch_cities),
) -> RestaurantOut:
    try:
        row = await repository.get_restaurant(restaurant_id=restaurant_id)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    if not allow_list.contains(row.get("city"), row.get("state")):
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    return RestaurantOut(**row)
