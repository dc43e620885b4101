from fastapi import APIRouter, Depends, Query

from soup_directory.api.errors import repository_http_error
from soup_directory.api.routes.restaurants import get_directory_engine
from soup_directory.schemas.restaurants import LocationSuggestionOut
from soup_directory.services.directory import DirectoryQueryEngine
from soup_directory.services.errors import RepositoryError

router = APIRouter()


@router.get("/locations")
async def search_locations(
    q: str | None = Query(default=None),
    engine: DirectoryQueryEngine = Depends(get_directory_engine),
) -> dict[str, list[LocationSuggestionOut]]:
    try:
        suggestions = await engine.suggest_locations(q)
    except RepositoryError as exc:
        raise repository_http_error(exc) from exc
    return {"suggestions": [LocationSuggestionOut(**item) for item in suggestions]}
