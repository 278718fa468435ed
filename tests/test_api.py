"""HTTP surface tests — request lifecycle, balances, availability and planning endpoints.

Error responses are RFC 7807 problem documents.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from httpx import AsyncClient

BASE = "/api/v1/leave"

WEEK = {"kind": "range", "start": "2025-07-07", "end": "2025-07-13"}


async def _create(client: AsyncClient, requester: str = "alice", dates: dict = WEEK, **extra) -> dict:
    resp = await client.post(
        f"{BASE}/requests",
        json={"requester_id": requester, "leave_type": "ANNUAL", "dates": dates, **extra},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _submit(client: AsyncClient, request_id: str, actor: str = "alice"):
    return await client.post(f"{BASE}/requests/{request_id}/submit", json={"actor_id": actor})


class TestHealth:

    async def test_health_check(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


# ═════════════════════════════════════════════════════════════════════
# Request lifecycle
# ═════════════════════════════════════════════════════════════════════


class TestRequestEndpoints:

    async def test_create_draft(self, client):
        body = await _create(client)
        assert body["status"] == "DRAFT"
        assert Decimal(body["total_days"]) == Decimal("5")
        assert body["dates"]["kind"] == "range"
        assert "version" in body

    async def test_get_request(self, client):
        created = await _create(client)
        resp = await client.get(f"{BASE}/requests/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    async def test_submit_and_approve(self, client):
        created = await _create(client)

        resp = await _submit(client, created["id"])
        assert resp.status_code == 200
        assert resp.json()["status"] == "PENDING_APPROVAL"
        assert resp.json()["approval_chain"][0]["approver_id"] == "manager"

        resp = await client.post(
            f"{BASE}/requests/{created['id']}/decision",
            json={"approver_id": "manager", "decision": "approve", "comment": "Enjoy"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "APPROVED"

        balance = (await client.get(f"{BASE}/balances/alice/ANNUAL/2025")).json()
        assert Decimal(balance["used"]) == Decimal("5")
        assert Decimal(balance["pending"]) == Decimal("0")

    async def test_cancel_pending_releases_reservation(self, client):
        created = await _create(client)
        await _submit(client, created["id"])

        resp = await client.post(
            f"{BASE}/requests/{created['id']}/cancel", json={"actor_id": "alice"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"

        balance = (await client.get(f"{BASE}/balances/alice/ANNUAL/2025")).json()
        assert Decimal(balance["pending"]) == Decimal("0")
        assert Decimal(balance["available"]) == Decimal("20")

    async def test_document_verification_gate(self, client):
        resp = await client.post(
            f"{BASE}/requests",
            json={"requester_id": "alice", "leave_type": "SICK", "dates": WEEK},
        )
        request_id = resp.json()["id"]
        await _submit(client, request_id)

        resp = await client.post(
            f"{BASE}/requests/{request_id}/decision",
            json={"approver_id": "manager", "decision": "approve"},
        )
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/document-verification-pending")

        resp = await client.post(
            f"{BASE}/requests/{request_id}/documents", json={"actor_id": "hr"},
        )
        assert resp.status_code == 200
        assert resp.json()["documents_verified"] is True

    async def test_escalate_hands_step_to_next_authority(self, client):
        created = await _create(client)
        await _submit(client, created["id"])
        resp = await client.post(
            f"{BASE}/requests/{created['id']}/escalate", json={"actor_id": "hr"},
        )
        assert resp.status_code == 200
        assert resp.json()["approval_chain"][0]["approver_id"] == "director"


class TestRequestErrors:

    async def test_missing_request_is_problem_json(self, client):
        resp = await client.get(f"{BASE}/requests/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/not-found")
        assert body["status"] == 404
        assert body["instance"].endswith("00000000-0000-0000-0000-000000000000")

    async def test_overlapping_request_blocked(self, client):
        first = await _create(client)
        await _submit(client, first["id"])

        second = await _create(
            client, dates={"kind": "dates", "dates": ["2025-07-09", "2025-07-14"]},
        )
        resp = await _submit(client, second["id"])

        assert resp.status_code == 409
        body = resp.json()
        assert body["type"].endswith("/conflict-blocked")
        assert body["errors"]["dates"] == ["2025-07-09"]

    async def test_invalid_transition(self, client):
        created = await _create(client)
        resp = await client.post(
            f"{BASE}/requests/{created['id']}/decision",
            json={"approver_id": "manager", "decision": "approve"},
        )
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/invalid-transition")

    async def test_wrong_approver_forbidden(self, client):
        created = await _create(client)
        await _submit(client, created["id"])
        resp = await client.post(
            f"{BASE}/requests/{created['id']}/decision",
            json={"approver_id": "bob", "decision": "approve"},
        )
        assert resp.status_code == 403

    async def test_request_validation_error(self, client):
        resp = await client.post(
            f"{BASE}/requests",
            json={
                "requester_id": "alice",
                "leave_type": "ANNUAL",
                "dates": {"kind": "range", "start": "2025-07-10", "end": "2025-07-07"},
            },
        )
        assert resp.status_code == 422
        body = resp.json()
        assert body["type"].endswith("/validation-error")
        assert body["errors"]

    async def test_unknown_leave_type(self, client):
        resp = await client.post(
            f"{BASE}/requests",
            json={"requester_id": "alice", "leave_type": "NOPE", "dates": WEEK},
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/unknown-leave-type")


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class TestBalanceEndpoints:

    async def test_balance_seeded_on_read(self, client):
        resp = await client.get(f"{BASE}/balances/alice/ANNUAL/2025")
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(body["entitled"]) == Decimal("20")
        assert Decimal(body["available"]) == Decimal("20")
        assert body["seed_reason"]

    async def test_manual_adjustment(self, client):
        resp = await client.post(
            f"{BASE}/balances/alice/ANNUAL/2025/adjust",
            json={"delta": "2.5", "actor_id": "hr", "reason": "Long service award"},
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["entitled"]) == Decimal("22.5")

    async def test_adjustment_requires_reason(self, client):
        resp = await client.post(
            f"{BASE}/balances/alice/ANNUAL/2025/adjust",
            json={"delta": "1", "actor_id": "hr", "reason": ""},
        )
        assert resp.status_code == 422

    async def test_negative_entitlement_rejected(self, client):
        resp = await client.post(
            f"{BASE}/balances/alice/ANNUAL/2025/adjust",
            json={"delta": "-25", "actor_id": "hr", "reason": "Correction"},
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/validation-error")

    async def test_adjustment_cannot_overdraw_reservations(self, client):
        created = await _create(client)
        await _submit(client, created["id"])

        resp = await client.post(
            f"{BASE}/balances/alice/ANNUAL/2025/adjust",
            json={"delta": "-18", "actor_id": "hr", "reason": "Correction"},
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/insufficient-balance")


# ═════════════════════════════════════════════════════════════════════
# Availability and planning
# ═════════════════════════════════════════════════════════════════════


class TestAvailabilityEndpoints:

    async def test_availability_reflects_pending_leave(self, client):
        created = await _create(client)
        await _submit(client, created["id"])

        resp = await client.post(
            f"{BASE}/availability",
            json={"persons": ["alice", "bob"], "window": WEEK},
        )
        assert resp.status_code == 200
        reports = resp.json()
        assert [r["person_id"] for r in reports] == ["alice", "bob"]
        assert reports[0]["availability"] == "partial"
        assert reports[1]["availability"] == "available"

    async def test_overlaps(self, client):
        plans = [
            {"person_id": p, "dates": {"kind": "dates", "dates": ["2026-08-15"]}}
            for p in ("ann", "ben", "cat", "dan")
        ]
        resp = await client.post(f"{BASE}/planning/overlaps", json=plans)
        assert resp.status_code == 200
        [cluster] = resp.json()
        assert cluster["size"] == 4
        assert cluster["conflict_level"] == "HIGH"

    @pytest.mark.parametrize("min_gap, expected", [(None, 1), (3, 2)])
    async def test_coverage_gaps(self, client, min_gap, expected):
        plans = [
            {"person_id": "ann", "dates": {"kind": "range", "start": "2025-01-01", "end": "2025-06-20"}},
            {"person_id": "ben", "dates": {"kind": "range", "start": "2025-07-01", "end": "2025-12-26"}},
        ]
        params = {"year": 2025}
        if min_gap is not None:
            params["min_gap_days"] = min_gap
        resp = await client.post(f"{BASE}/planning/coverage-gaps", json=plans, params=params)
        assert resp.status_code == 200
        assert len(resp.json()) == expected

    async def test_coverage_gaps_requires_year(self, client):
        resp = await client.post(f"{BASE}/planning/coverage-gaps", json=[])
        assert resp.status_code == 422
