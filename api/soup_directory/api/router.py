from fastapi import APIRouter

from soup_directory.api.routes import admin, cities, claims, health, restaurants, search, soup_types, submissions

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(restaurants.router, prefix="/restaurants", tags=["public"])
api_router.include_router(search.router, prefix="/search", tags=["public"])
api_router.include_router(soup_types.router, prefix="/soup-types", tags=["public"])
api_router.include_router(cities.router, prefix="/cities", tags=["public"])
api_router.include_router(submissions.router, prefix="/submissions", tags=["submissions"])
api_router.include_router(claims.router, prefix="/claims", tags=["claims"])
api_router.include_router(admin.router, prefix="/admin", tags=["moderation"])
