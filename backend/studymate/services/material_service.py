"""Material catalog queries and creation."""

from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from studymate.models.material import Material
from studymate.services.exceptions import MaterialNotFoundError
from studymate.services.identity import Principal
from studymate.services.user_service import UserService


@dataclass
class MaterialFilters:
    """Catalog filters; None means "don't filter on this field"."""

    search: str | None = None
    course: str | None = None
    year: str | None = None
    semester: str | None = None
    subject: str | None = None
    material_type: str | None = None
    limit: int = 50
    offset: int = 0


class MaterialService:
    """Service for browsing and adding catalog entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_materials(self, filters: MaterialFilters) -> tuple[list[Material], int]:
        """Return one page of matching materials (newest first) and the total count."""
        conditions = []

        if filters.search:
            pattern = f"%{filters.search.lower()}%"
            conditions.append(
                or_(
                    func.lower(Material.title).like(pattern),
                    func.lower(Material.subject).like(pattern),
                )
            )

        for field in ("course", "year", "semester", "subject", "material_type"):
            value = getattr(filters, field)
            if value:
                conditions.append(getattr(Material, field) == value)

        count_result = await self.db.execute(
            select(func.count()).select_from(Material).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Material)
            .options(selectinload(Material.uploader))
            .where(*conditions)
            .order_by(Material.created_at.desc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        return list(result.scalars().all()), total

    async def get_material(self, material_id: str) -> Material:
        result = await self.db.execute(
            select(Material)
            .options(selectinload(Material.uploader))
            .where(Material.id == material_id)
        )
        material = result.scalar_one_or_none()
        if material is None:
            raise MaterialNotFoundError(f"Material {material_id} not found")
        return material

    async def create_material(self, principal: Principal, **fields) -> Material:
        """
        Record metadata for a file the client already uploaded to blob storage.

        The uploader's profile is upserted in the same transaction.
        """
        try:
            uploader = await UserService(self.db).upsert_profile(principal)

            material = Material(uploader=uploader, downloads=0, **fields)
            self.db.add(material)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return material
