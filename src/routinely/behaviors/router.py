"""Behavior record endpoint."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.dependencies import get_current_user
from routinely.behaviors.schemas import (
    BehaviorRecordResponse,
    RecordBehaviorRequest,
    RecordBehaviorResponse,
)
from routinely.behaviors.service import record_behavior
from routinely.database import get_session
from routinely.db.models import User
from routinely.dependencies import get_redis_dep

router = APIRouter(prefix="/api/v1", tags=["Behaviors"])


@router.post("/behaviors/{behavior_id}/records", response_model=RecordBehaviorResponse, status_code=201)
async def create_behavior_record(
    behavior_id: uuid.UUID,
    body: RecordBehaviorRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Record a behavior; positive ones add points, negative ones subtract."""
    result = await record_behavior(
        db, user, behavior_id, body.child_id, day=body.date, notes=body.notes, redis=redis
    )
    return RecordBehaviorResponse(
        record=BehaviorRecordResponse(
            id=result.record.id,
            behavior_id=result.record.behavior_id,
            date=result.record.date,
            notes=result.record.notes,
            points_applied=result.record.points_applied,
        ),
        behavior_type=result.behavior.type,
        transaction_id=result.transaction.id,
        new_balance=result.new_balance,
    )
