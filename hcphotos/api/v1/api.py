"""V1 API router aggregation."""
from fastapi import APIRouter

from hcphotos.api.v1.endpoints import feed

api_router = APIRouter(prefix="/v1")
api_router.include_router(feed.router)
