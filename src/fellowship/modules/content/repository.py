"""
Content Repository

Content rows are written once and never updated.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.content.models import Content


async def create(db: AsyncSession, **fields) -> Content:
    content = Content(**fields)
    db.add(content)
    await db.flush()
    await db.refresh(content)
    return content


async def list_for_institution(db: AsyncSession, institution_id: str) -> list[Content]:
    result = await db.execute(
        select(Content)
        .where(Content.institution_id == institution_id)
        .order_by(Content.created_at.desc())
    )
    return list(result.scalars().all())


async def list_for_cohorts(db: AsyncSession, cohort_ids: list[str]) -> list[Content]:
    if not cohort_ids:
        return []
    result = await db.execute(
        select(Content)
        .where(Content.cohort_id.in_(cohort_ids))
        .order_by(Content.created_at.desc())
    )
    return list(result.scalars().all())
