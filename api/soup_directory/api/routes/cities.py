from fastapi import APIRouter, Depends

from soup_directory.api.errors import repository_http_error
from soup_directory.core.launch_cities import LaunchCityAllowList, get_launch_cities
from soup_directory.schemas.counts import CityCountOut, CityCountsOut, CityTotalsOut
from soup_directory.services.counts import summarize_city_counts
from soup_directory.services.errors import RepositoryError
from soup_directory.services.repository import get_repository

router = APIRouter()


@router.get("/counts", response_model=CityCountsOut)
async def city_counts(
    repository=Depends(get_repository),
    allow_list: LaunchCityAllowList = Depends(get_launch_cities),
) -> CityCountsOut:
    try:
        rows = await repository.list_visible_restaurant_locations(states=allow_list.states)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    summary = summarize_city_counts(rows, allow_list)
    return CityCountsOut(
        cities=[CityCountOut(**city) for city in summary.cities],
        totals=CityTotalsOut(restaurants=summary.total_restaurants, cities=len(summary.cities)),
    )
