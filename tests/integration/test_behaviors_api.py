"""Integration tests for behavior records."""

from __future__ import annotations

import uuid

import pytest
from httpx import AsyncClient


class TestBehaviorRecords:

    @pytest.mark.asyncio
    async def test_positive_then_negative(self, client: AsyncClient, seed, family, auth):
        parent, child = family
        good = await seed.behavior(child, points=6)
        bad = await seed.behavior(child, type="NEGATIVE", points=2, title="Interrupting")

        first = await client.post(
            f"/api/v1/behaviors/{good.id}/records",
            json={"child_id": str(child.id), "notes": "At dinner"},
            headers=auth(parent),
        )
        assert first.status_code == 201
        assert first.json()["new_balance"] == 6
        assert first.json()["behavior_type"] == "POSITIVE"

        second = await client.post(
            f"/api/v1/behaviors/{bad.id}/records",
            json={"child_id": str(child.id), "date": "2024-02-01"},
            headers=auth(parent),
        )
        assert second.status_code == 201
        assert second.json()["record"]["points_applied"] == -2
        assert second.json()["record"]["date"] == "2024-02-01"
        assert second.json()["new_balance"] == 4

    @pytest.mark.asyncio
    async def test_unknown_behavior(self, client: AsyncClient, family, auth):
        parent, child = family
        response = await client.post(
            f"/api/v1/behaviors/{uuid.uuid4()}/records",
            json={"child_id": str(child.id)},
            headers=auth(parent),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"
