"""Gamification HTTP endpoints end to end over the in-memory database."""

from __future__ import annotations

import copy

import pytest
from httpx import AsyncClient

from sellscore.gamification.ruleset import DEFAULT_RULESET_DATA

API = "/api/v1/gamification"


class TestCatalogue:
    @pytest.mark.asyncio
    async def test_levels(self, client: AsyncClient):
        response = await client.get(f"{API}/levels")
        assert response.status_code == 200
        levels = response.json()["levels"]
        assert [lvl["level"] for lvl in levels] == [1, 2, 3, 4, 5]
        assert levels[1]["required_points"] == 100

    @pytest.mark.asyncio
    async def test_badges_and_trophies(self, client: AsyncClient):
        badges = (await client.get(f"{API}/badges")).json()["badges"]
        assert "bronze" in {b["type"] for b in badges}
        trophies = (await client.get(f"{API}/trophies")).json()["trophies"]
        assert {t["category"] for t in trophies} == {"monthly", "consecutive", "special"}

    @pytest.mark.asyncio
    async def test_empty_leaderboard(self, client: AsyncClient):
        response = await client.get(f"{API}/leaderboard")
        assert response.status_code == 200
        assert response.json() == {"entries": []}


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        response = await client.get(f"{API}/me")
        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get(f"{API}/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_token_type(self, client: AsyncClient, make_token):
        token = make_token("s1", "seller", type="refresh")
        response = await client.get(f"{API}/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_seller_cannot_mutate(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/points/apply",
            json={"user_id": "s1", "delta": 500, "reason": "self-service"},
            headers=auth_headers("s1", "seller"),
        )
        assert response.status_code == 403


class TestPoints:
    @pytest.mark.asyncio
    async def test_apply_and_read_summary(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/points/apply",
            json={"user_id": "s1", "delta": 120, "reason": "launch bonus"},
            headers=auth_headers(),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total_points"] == 120
        assert body["current_level"] == 2

        me = await client.get(f"{API}/me", headers=auth_headers("s1", "seller"))
        assert me.status_code == 200
        summary = me.json()
        assert summary["current_level"]["name"] == "Seller"
        assert summary["next_level"]["level"] == 3
        assert summary["badges_count"] == 1
        assert summary["rank"] == 1
        assert summary["progress"] == 10.0

        other = await client.get(f"{API}/users/s1", headers=auth_headers("s2", "seller"))
        assert other.json()["total_points"] == 120

    @pytest.mark.asyncio
    async def test_zero_delta_rejected(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/points/apply",
            json={"user_id": "s1", "delta": 0, "reason": "nothing"},
            headers=auth_headers(),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_award_base_points(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/points/award",
            json={"user_id": "s1", "kind": "perfect_attendance"},
            headers=auth_headers(),
        )
        assert response.json()["total_points"] == 25

    @pytest.mark.asyncio
    async def test_leaderboard_after_points(self, client: AsyncClient, auth_headers):
        for user_id, delta in [("s1", 30), ("s2", 80)]:
            await client.post(
                f"{API}/points/apply",
                json={"user_id": user_id, "delta": delta, "reason": "sale"},
                headers=auth_headers(),
            )
        entries = (await client.get(f"{API}/leaderboard")).json()["entries"]
        assert [(e["rank"], e["user_id"]) for e in entries] == [(1, "s2"), (2, "s1")]
        assert entries[0]["level_name"] == "Beginner"


class TestAdminAdjust:
    @pytest.mark.asyncio
    async def test_cooldown_returns_429(self, client: AsyncClient, auth_headers):
        payload = {"target_user_id": "s1", "points": 10, "reason": "good job", "kind": "add"}
        first = await client.post(f"{API}/points/admin-adjust", json=payload, headers=auth_headers())
        assert first.status_code == 200
        assert first.json()["total_points"] == 10

        second = await client.post(f"{API}/points/admin-adjust", json=payload, headers=auth_headers())
        assert second.status_code == 429
        body = second.json()
        assert body["code"] == "cooldown_active"
        assert body["cooldown_hours"] == 20
        assert 0 < int(second.headers["retry-after"]) <= 20 * 3600

    @pytest.mark.asyncio
    async def test_daily_cap_returns_429(self, client: AsyncClient, auth_headers):
        payload = {"target_user_id": "s1", "points": 150, "reason": "too generous", "kind": "add"}
        response = await client.post(f"{API}/points/admin-adjust", json=payload, headers=auth_headers())
        assert response.status_code == 429
        body = response.json()
        assert body["code"] == "daily_cap_exceeded"
        assert body["remaining"] == 100

    @pytest.mark.asyncio
    async def test_bad_kind(self, client: AsyncClient, auth_headers):
        payload = {"target_user_id": "s1", "points": 10, "reason": "x", "kind": "multiply"}
        response = await client.post(f"{API}/points/admin-adjust", json=payload, headers=auth_headers())
        assert response.status_code == 422


class TestPenaltiesAndGoals:
    @pytest.mark.asyncio
    async def test_no_sales_penalty_once(self, client: AsyncClient, auth_headers):
        first = await client.post(f"{API}/penalties/no-sales", json={"user_id": "s1"}, headers=auth_headers())
        assert first.json()["applied"] is True
        assert first.json()["gamification"]["total_points"] == 0

        second = await client.post(f"{API}/penalties/no-sales", json={"user_id": "s1"}, headers=auth_headers())
        assert second.json() == {"applied": False, "gamification": None}

    @pytest.mark.asyncio
    async def test_unknown_penalty(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/penalties/apply", json={"user_id": "s1", "violation": "jaywalking"}, headers=auth_headers()
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_goal_completion(self, client: AsyncClient, auth_headers):
        payload = {"user_id": "s1", "goal_type": "products_sold", "value": 25}
        response = await client.post(f"{API}/goals/update", json=payload, headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["total_points"] == 10

        me = (await client.get(f"{API}/me", headers=auth_headers("s1", "seller"))).json()
        assert me["daily_goals"][0]["goal_type"] == "products_sold"
        assert me["daily_goals"][0]["is_completed"] is True

    @pytest.mark.asyncio
    async def test_unknown_goal_type(self, client: AsyncClient, auth_headers):
        payload = {"user_id": "s1", "goal_type": "steps_walked", "value": 1}
        response = await client.post(f"{API}/goals/update", json=payload, headers=auth_headers())
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_negative_goal_value(self, client: AsyncClient, auth_headers):
        payload = {"user_id": "s1", "goal_type": "sales_count", "value": -3}
        response = await client.post(f"{API}/goals/update", json=payload, headers=auth_headers())
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_nan_goal_value(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/goals/update",
            content='{"user_id": "s1", "goal_type": "sales_count", "value": NaN}',
            headers={**auth_headers(), "Content-Type": "application/json"},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_bad_month(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/streak/update-best-seller", json={"user_id": "s1", "month": "March"}, headers=auth_headers()
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_best_seller_without_stats(self, client: AsyncClient, auth_headers):
        response = await client.post(
            f"{API}/streak/update-best-seller", json={"user_id": "s1", "month": "2026-01"}, headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.json()["consecutive_best_seller_count"] == 0


class TestEvents:
    @pytest.mark.asyncio
    async def test_sale_event(self, client: AsyncClient, auth_headers):
        payload = {"user_id": "s1", "amount": 120.0, "product_count": 2, "is_holiday": True}
        response = await client.post(f"{API}/events/sale", json=payload, headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["total_points"] == 40

    @pytest.mark.asyncio
    async def test_satisfaction_score_out_of_range(self, client: AsyncClient, auth_headers):
        payload = {"user_id": "s1", "score": 7}
        response = await client.post(f"{API}/events/satisfaction", json=payload, headers=auth_headers())
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_complaint_and_return(self, client: AsyncClient, auth_headers):
        await client.post(
            f"{API}/points/apply", json={"user_id": "s1", "delta": 100, "reason": "sale"}, headers=auth_headers()
        )
        complaint = await client.post(
            f"{API}/events/complaint", json={"user_id": "s1", "severity": "low"}, headers=auth_headers()
        )
        assert complaint.json()["total_points"] == 90
        returned = await client.post(
            f"{API}/events/return", json={"user_id": "s1", "amount": 50, "product_count": 1}, headers=auth_headers()
        )
        assert returned.json()["total_points"] == 75


class TestNotifications:
    @pytest.mark.asyncio
    async def test_list_and_mark_read(self, client: AsyncClient, auth_headers):
        await client.post(
            f"{API}/points/apply", json={"user_id": "s1", "delta": 100, "reason": "sale"}, headers=auth_headers()
        )
        seller = auth_headers("s1", "seller")

        listing = (await client.get(f"{API}/me/notifications", headers=seller)).json()
        assert listing["total"] == 2
        assert listing["unread"] == 2
        note_id = listing["notifications"][0]["id"]

        response = await client.post(f"{API}/me/notifications/{note_id}/read", headers=seller)
        assert response.json() == {"success": True}

        unread = (await client.get(f"{API}/me/notifications?unread_only=true", headers=seller)).json()
        assert unread["unread"] == 1
        assert len(unread["notifications"]) == 1

    @pytest.mark.asyncio
    async def test_cannot_read_someone_elses(self, client: AsyncClient, auth_headers):
        await client.post(
            f"{API}/points/apply", json={"user_id": "s1", "delta": 100, "reason": "sale"}, headers=auth_headers()
        )
        listing = (await client.get(f"{API}/me/notifications", headers=auth_headers("s1", "seller"))).json()
        note_id = listing["notifications"][0]["id"]

        response = await client.post(f"{API}/me/notifications/{note_id}/read", headers=auth_headers("s2", "seller"))
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestConfig:
    @pytest.mark.asyncio
    async def test_get_default(self, client: AsyncClient, auth_headers):
        response = await client.get(f"{API}/config", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["version"] == 0

    @pytest.mark.asyncio
    async def test_put_invalid(self, client: AsyncClient, auth_headers):
        data = copy.deepcopy(DEFAULT_RULESET_DATA)
        data["avatar_levels"][1]["required_points"] = 0
        response = await client.put(f"{API}/config", json=data, headers=auth_headers())
        assert response.status_code == 422
        assert response.json()["errors"]

    @pytest.mark.asyncio
    async def test_put_valid_hot_swaps(self, client: AsyncClient, auth_headers):
        data = copy.deepcopy(DEFAULT_RULESET_DATA)
        data["base_points"]["perfect_attendance"] = 40
        response = await client.put(f"{API}/config", json=data, headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["version"] == 1

        award = await client.post(
            f"{API}/points/award", json={"user_id": "s1", "kind": "perfect_attendance"}, headers=auth_headers()
        )
        assert award.json()["total_points"] == 40

    @pytest.mark.asyncio
    async def test_seller_cannot_read_config(self, client: AsyncClient, auth_headers):
        response = await client.get(f"{API}/config", headers=auth_headers("s1", "seller"))
        assert response.status_code == 403
