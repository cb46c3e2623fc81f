"""Ownership checks for children and their data.

Parents may read and write their own children. Professionals may read a
child's progress while they hold an active grant with "view_progress".
Every check runs before any mutating statement.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.db.models import Child, ProfessionalAccess, User
from routinely.errors import Forbidden, NotFound

VIEW_PROGRESS = "view_progress"


async def get_child(db: AsyncSession, child_id: uuid.UUID) -> Child:
    child = await db.get(Child, child_id)
    if child is None:
        raise NotFound("Child not found")
    return child


async def require_parent(db: AsyncSession, user: User, child_id: uuid.UUID) -> Child:
    """Return the child if the caller is its parent."""
    child = await get_child(db, child_id)
    if child.parent_id != user.id:
        raise Forbidden("You are not the parent of this child")
    return child


async def has_professional_access(db: AsyncSession, user: User, child_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(ProfessionalAccess).where(
            ProfessionalAccess.child_id == child_id,
            ProfessionalAccess.professional_id == user.id,
            ProfessionalAccess.status == "active",
        )
    )
    return any(VIEW_PROGRESS in (grant.permissions or []) for grant in result.scalars())


async def require_reader(db: AsyncSession, user: User, child_id: uuid.UUID) -> Child:
    """Return the child if the caller is its parent or an authorized professional."""
    child = await get_child(db, child_id)
    if child.parent_id == user.id:
        return child
    if user.role == "professional" and await has_professional_access(db, user, child_id):
        return child
    raise Forbidden("You do not have access to this child")
