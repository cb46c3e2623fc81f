"""Points API endpoints: ledger history, stats, adjustments, reconciliation."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from routinely.auth.access import require_parent, require_reader
from routinely.auth.dependencies import get_current_user
from routinely.database import get_session
from routinely.db.models import User
from routinely.dependencies import get_redis_dep
from routinely.points.balance_service import ReconcileReport, reconcile_balance
from routinely.points.history_service import get_points_history, get_points_stats, serialize_transaction
from routinely.points.ledger_service import adjust_points
from routinely.points.schemas import (
    AdjustPointsRequest,
    AdjustPointsResponse,
    BalanceResponse,
    PointsHistoryResponse,
    PointsStatsResponse,
    ReconcileRequest,
    ReconcileResponse,
    TransactionResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Points"])


def _report_response(report: ReconcileReport) -> ReconcileResponse:
    return ReconcileResponse(
        child_id=report.child_id,
        cached_balance=report.cached_balance,
        ledger_balance=report.ledger_balance,
        drift=report.drift,
        transaction_count=report.transaction_count,
        broken_sequences=report.broken_sequences,
        consistent=report.consistent,
        repaired=report.repaired,
    )


@router.get("/points", response_model=PointsHistoryResponse)
async def points_history(
    child_id: uuid.UUID,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Balance, lifetime stats and one page of the ledger, newest first."""
    return await get_points_history(db, user, child_id, limit=limit, offset=offset)


@router.post("/points/adjust", response_model=AdjustPointsResponse, status_code=201)
async def adjust(
    body: AdjustPointsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Manual adjustment by the parent."""
    result = await adjust_points(db, user, body.child_id, body.points, body.description, redis=redis)
    return AdjustPointsResponse(
        transaction_id=result.transaction_id,
        new_balance=result.new_balance,
        transaction=TransactionResponse(**serialize_transaction(result.transaction)),
    )


@router.get("/points/balance", response_model=BalanceResponse)
async def balance(
    child_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    child = await require_reader(db, user, child_id)
    return BalanceResponse(child_id=child.id, balance=child.points_balance)


@router.get("/points/stats", response_model=PointsStatsResponse)
async def points_stats(
    child_id: uuid.UUID,
    period: str = Query("month", pattern="^(week|month|year)$"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Period totals, daily breakdown and trend against the previous period."""
    return await get_points_stats(db, user, child_id, period=period)


@router.get("/points/reconcile", response_model=ReconcileResponse)
async def check_balance(
    child_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Compare the cached balance against the ledger without changing anything."""
    await require_reader(db, user, child_id)
    return _report_response(await reconcile_balance(db, child_id, repair=False))


@router.post("/points/reconcile", response_model=ReconcileResponse)
async def repair_balance(
    body: ReconcileRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Re-derive the cached balance from the ledger."""
    await require_parent(db, user, body.child_id)
    return _report_response(await reconcile_balance(db, body.child_id, repair=body.repair))
