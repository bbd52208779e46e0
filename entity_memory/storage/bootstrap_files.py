"""Named-file-per-tenant store (rendered MEMORY.md and similar bootstrap files)."""

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BootstrapFileModel
from .utils import dialect_insert, utc_now


class BootstrapFileRepository:
    """Overwrite-on-write text files keyed by (tenant_id, file_name).

    Runs inside the caller's transaction; never commits.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, tenant_id: str, file_name: str, content: str) -> None:
        now = utc_now()
        stmt = dialect_insert(self.session, BootstrapFileModel).values(
            tenant_id=tenant_id,
            file_name=file_name,
            content=content,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BootstrapFileModel.tenant_id, BootstrapFileModel.file_name],
            set_={"content": stmt.excluded.content, "updated_at": now},
        )
        await self.session.execute(stmt)

    async def get(self, tenant_id: str, file_name: str) -> str | None:
        result = await self.session.execute(
            select(BootstrapFileModel.content).where(
                and_(
                    BootstrapFileModel.tenant_id == tenant_id,
                    BootstrapFileModel.file_name == file_name,
                )
            )
        )
        return result.scalar_one_or_none()
