from fastapi import APIRouter, Depends

from soup_directory.api.errors import repository_http_error
from soup_directory.core.launch_cities import LaunchCityAllowList, get_launch_cities
from soup_directory.schemas.counts import SoupTypeCountsOut
from soup_directory.services.counts import summarize_soup_type_counts
from soup_directory.services.errors import RepositoryError
from soup_directory.services.repository import get_repository

router = APIRouter()


@router.get("/counts", response_model=SoupTypeCountsOut)
async def soup_type_counts(
    repository=Depends(get_repository),
    allow_list: LaunchCityAllowList = Depends(get_launch_cities),
) -> SoupTypeCountsOut:
    try:
        rows = await repository.list_soup_type_rows(states=allow_list.states)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    summary = summarize_soup_type_counts(rows, allow_list)
    return SoupTypeCountsOut(counts=summary.counts, names=summary.names, display_counts=summary.display_counts)
