"""Integration tests for the points API."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient

from routinely.config import get_settings


class TestPointsHistory:

    @pytest.mark.asyncio
    async def test_history_page(self, client: AsyncClient, seed, auth):
        parent = await seed.user()
        child = await seed.child(parent, points=40)

        response = await client.get(
            "/api/v1/points", params={"child_id": str(child.id), "limit": 10}, headers=auth(parent)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == 40
        assert data["child"]["name"] == "Alex"
        assert data["stats"]["total_earned"] == 40
        assert data["transactions"][0]["transaction_type"] == "ADJUSTMENT"
        assert data["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_limit_above_max(self, client: AsyncClient, family, auth):
        parent, child = family
        response = await client.get(
            "/api/v1/points", params={"child_id": str(child.id), "limit": 500}, headers=auth(parent)
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_limit_cap_follows_settings(self, client: AsyncClient, family, auth, monkeypatch):
        monkeypatch.setenv("ROUTINELY_HISTORY_MAX_LIMIT", "200")
        get_settings.cache_clear()
        parent, child = family
        response = await client.get(
            "/api/v1/points", params={"child_id": str(child.id), "limit": 150}, headers=auth(parent)
        )
        assert response.status_code == 200
        assert response.json()["pagination"]["limit"] == 150

    @pytest.mark.asyncio
    async def test_unknown_child(self, client: AsyncClient, family, auth):
        parent, _ = family
        response = await client.get(
            "/api/v1/points", params={"child_id": str(uuid.uuid4())}, headers=auth(parent)
        )
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_other_parent(self, client: AsyncClient, seed, family, auth):
        _, child = family
        stranger = await seed.user()
        response = await client.get(
            "/api/v1/points", params={"child_id": str(child.id)}, headers=auth(stranger)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"


class TestAdjust:

    @pytest.mark.asyncio
    async def test_adjust_and_balance(self, client: AsyncClient, family, auth):
        parent, child = family
        response = await client.post(
            "/api/v1/points/adjust",
            json={"child_id": str(child.id), "points": 15, "description": "Tidy room"},
            headers=auth(parent),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["new_balance"] == 15
        assert data["transaction"]["related_type"] == "Adjustment"

        balance = await client.get(
            "/api/v1/points/balance", params={"child_id": str(child.id)}, headers=auth(parent)
        )
        assert balance.json() == {"child_id": str(child.id), "balance": 15}

    @pytest.mark.asyncio
    async def test_out_of_range(self, client: AsyncClient, family, auth):
        parent, child = family
        response = await client.post(
            "/api/v1/points/adjust",
            json={"child_id": str(child.id), "points": 1000},
            headers=auth(parent),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_professional_cannot_adjust(self, client: AsyncClient, seed, family, auth):
        _, child = family
        pro = await seed.user(role="professional")
        await seed.grant(child, pro)
        response = await client.post(
            "/api/v1/points/adjust",
            json={"child_id": str(child.id), "points": 5},
            headers=auth(pro),
        )
        assert response.status_code == 403


class TestStats:

    @pytest.mark.asyncio
    async def test_month_stats(self, client: AsyncClient, seed, auth):
        parent = await seed.user()
        child = await seed.child(parent, points=25)
        await seed.reward(child, points_required=60)

        response = await client.get(
            "/api/v1/points/stats",
            params={"child_id": str(child.id), "period": "month"},
            headers=auth(parent),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["period"] == "month"
        assert data["period_stats"]["total_earned"] == 25
        assert data["trends"] is None
        assert data["available_rewards"][0]["points_needed"] == 35

    @pytest.mark.asyncio
    async def test_bad_period(self, client: AsyncClient, family, auth):
        parent, child = family
        response = await client.get(
            "/api/v1/points/stats",
            params={"child_id": str(child.id), "period": "decade"},
            headers=auth(parent),
        )
        assert response.status_code == 422


class TestReconcile:

    @pytest.mark.asyncio
    async def test_check_is_consistent(self, client: AsyncClient, seed, auth):
        parent = await seed.user()
        child = await seed.child(parent, points=12)

        response = await client.get(
            "/api/v1/points/reconcile", params={"child_id": str(child.id)}, headers=auth(parent)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["consistent"]
        assert data["drift"] == 0
        assert data["ledger_balance"] == 12

    @pytest.mark.asyncio
    async def test_repair_requires_parent(self, client: AsyncClient, seed, family, auth):
        _, child = family
        pro = await seed.user(role="professional")
        await seed.grant(child, pro)
        response = await client.post(
            "/api/v1/points/reconcile",
            json={"child_id": str(child.id), "repair": True},
            headers=auth(pro),
        )
        assert response.status_code == 403
