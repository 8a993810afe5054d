"""Material catalog endpoints."""

from fastapi import APIRouter, Query, Request, status

from studymate.api.deps import CurrentPrincipal, DBSession
from studymate.core.errors import NotFoundError
from studymate.core.rate_limit import RateLimits, limiter, user_limiter
from studymate.schemas.common import PaginatedResponse
from studymate.schemas.material import MaterialCreate, MaterialResponse
from studymate.services.exceptions import MaterialNotFoundError, UserProfileNotFoundError
from studymate.services.material_service import MaterialFilters, MaterialService

router = APIRouter()


@router.get("", response_model=PaginatedResponse[MaterialResponse])
@limiter.limit(RateLimits.SEARCH)
async def list_materials(
    request: Request,
    db: DBSession,
    search: str | None = Query(None, max_length=200),
    course: str | None = None,
    year: str | None = None,
    semester: str | None = None,
    subject: str | None = None,
    material_type: str | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """
    Browse the catalog, newest first.

    ``search`` matches title or subject, case-insensitively; the remaining
    filters are exact matches.
    """
    filters = MaterialFilters(
        search=search,
        course=course,
        year=year,
        semester=semester,
        subject=subject,
        material_type=material_type,
        limit=limit,
        offset=offset,
    )
    materials, total = await MaterialService(db).list_materials(filters)

    return PaginatedResponse[MaterialResponse](
        items=[MaterialResponse.model_validate(m) for m in materials],
        total=total,
        limit=limit,
        offset=offset,
        has_next=offset + len(materials) < total,
    )


@router.get("/{material_id}", response_model=MaterialResponse)
async def get_material(material_id: str, db: DBSession):
    """Get a single catalog entry."""
    try:
        material = await MaterialService(db).get_material(material_id)
    except MaterialNotFoundError:
        raise NotFoundError("Material", material_id)

    return material


@router.post("", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED)
@user_limiter.limit(RateLimits.MATERIAL_CREATE)
async def create_material(
    request: Request,
    data: MaterialCreate,
    db: DBSession,
    principal: CurrentPrincipal,
):
    """
    Add a material to the catalog.

    The file itself is uploaded by the client straight to blob storage;
    this records its metadata and URL.
    """
    try:
        material = await MaterialService(db).create_material(
            principal, **data.model_dump(mode="json")
        )
    except UserProfileNotFoundError:
        raise NotFoundError("User")

    return material
