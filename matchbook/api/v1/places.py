import logging

from fastapi import APIRouter, Depends

from matchbook.api.deps import get_resolver
from matchbook.schemas.place import (
    Coordinates,
    DuplicateCheckRequest,
    DuplicateVerdict,
    ResolveRequest,
    ResolveResponse,
    TextSearchRequest,
)
from matchbook.services.duplicates import check_duplicate
from matchbook.services.resolver import PlaceResolver

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/resolve",
    response_model=ResolveResponse,
    response_model_exclude_none=True,
    summary="Resolve a shared map link",
    description="Extract a Google Maps link from shared text, expand it if shortened, and resolve it to a single normalized place via the Places API, falling back to scraping the Maps page. The response includes the per-stage trace.",
)
async def resolve_place(
    request: ResolveRequest,
    resolver: PlaceResolver = Depends(get_resolver),
):
    """Resolve shared text or a map link to a normalized place."""
    resolution = await resolver.resolve(request.text)
    return ResolveResponse(
        success=True,
        place=resolution.place,
        resolved_url=resolution.resolved_url,
        stages=resolution.stages,
    )


@router.post(
    "/search",
    response_model=ResolveResponse,
    response_model_exclude_none=True,
    summary="Search for a place by text",
    description="Manual place entry: run a Places Text Search for the query, optionally biased towards the given coordinates, and return the best match.",
)
async def search_place(
    request: TextSearchRequest,
    resolver: PlaceResolver = Depends(get_resolver),
):
    place = await resolver.search_text(request.query, lat=request.lat, lng=request.lng)
    return ResolveResponse(success=True, place=place)


@router.post(
    "/duplicates",
    response_model=DuplicateVerdict,
    summary="Check a candidate place for duplicates",
    description="Compare a candidate's source URL and coordinates against the caller's existing records. A URL match wins; otherwise the first record within the distance threshold (default 50 m) is reported.",
)
async def find_duplicate(request: DuplicateCheckRequest):
    coords = None
    if request.lat is not None and request.lng is not None:
        coords = Coordinates(lat=request.lat, lng=request.lng)
    return check_duplicate(
        coords,
        request.url,
        request.records,
        threshold_meters=request.threshold_meters,
    )
