"""
Tests for the payouts HTTP API.

Verifies:
- Listing, lookup and progress endpoints
- Approve-and-pay and class installments over HTTP
- Domain errors mapped to status codes
"""

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import BRANCH_ID, CENTER_ID
from payout_ledger.core.actor import SYSTEM_ACTOR
from payout_ledger.core.database import get_db
from payout_ledger.main import app
from payout_ledger.models import TeacherPaymentUnit
from payout_ledger.services.audit_service import get_audit_logs
from payout_ledger.services.payout_service import PayoutScope, TeacherPayoutService

BASE = "/api/payouts/teachers"
ACTOR_HEADERS = {"X-Actor-Id": "7", "X-Actor-Name": "Olena Admin"}


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def scope(teacher, make_class) -> PayoutScope:
    teaching_class = await make_class(per=TeacherPaymentUnit.CLASS, amount="500.00")
    return PayoutScope(
        teacher_id=teacher.id,
        class_id=teaching_class.id,
        branch_id=BRANCH_ID,
        center_id=CENTER_ID,
    )


@pytest.fixture
def seed(session_factory, scope):
    """Create payouts through the ledger in a separate session."""

    async def _seed(unit_type=TeacherPaymentUnit.SESSION, amount="200.00"):
        async with session_factory() as session:
            service = TeacherPayoutService(session)
            if unit_type == TeacherPaymentUnit.CLASS:
                payout = await service.create_class_payout(scope, amount, SYSTEM_ACTOR)
            else:
                payout = await service.create_payout(
                    scope, unit_type, amount, Decimal(1), SYSTEM_ACTOR
                )
            return payout.id

    return _seed


class TestHealth:
    """Tests for health endpoints."""

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestReadEndpoints:
    """Tests for listing and lookups."""

    async def test_list_payouts(self, client, seed, scope):
        await seed()
        await seed()
        await seed(unit_type=TeacherPaymentUnit.CLASS)

        response = await client.get(BASE, params={"teacher_id": scope.teacher_id, "limit": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert len(body["items"]) == 2
        assert body["limit"] == 2

        response = await client.get(BASE, params={"unit_type": "CLASS"})
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["status"] == "INSTALLMENT"

    async def test_get_payout(self, client, seed):
        payout_id = await seed(amount="150.00")

        response = await client.get(f"{BASE}/{payout_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == payout_id
        assert body["status"] == "PENDING"
        assert Decimal(body["total_amount"]) == Decimal("150.00")
        assert Decimal(body["remaining"]) == Decimal("150.00")

    async def test_get_missing_payout(self, client):
        response = await client.get(f"{BASE}/9999")

        assert response.status_code == 404
        assert response.json()["code"] == "PAYOUT_NOT_FOUND"

    async def test_teacher_summary(self, client, seed, scope):
        await seed(amount="300.00")
        await seed(unit_type=TeacherPaymentUnit.CLASS)

        response = await client.get(f"{BASE}/{scope.teacher_id}/progress/summary")

        assert response.status_code == 200
        body = response.json()
        assert body["payout_count"] == 2
        assert Decimal(body["total_amount"]) == Decimal("800.00")
        assert Decimal(body["progress_percent"]) == Decimal("0")


class TestApproveEndpoint:
    """Tests for PATCH /{id}/status."""

    async def test_approve_and_pay(self, client, seed, session_factory):
        payout_id = await seed(amount="200.00")

        response = await client.patch(
            f"{BASE}/{payout_id}/status",
            json={"status": "PAID", "payment_method": "CASH"},
            headers=ACTOR_HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "PAID"
        assert Decimal(body["total_paid"]) == Decimal("200.00")
        assert body["payment_method"] == "CASH"
        assert body["payment_id"] is not None

        async with session_factory() as session:
            logs, _ = await get_audit_logs(session, entity_id=payout_id, action_type="PAY")
        assert logs[0].user_id == 7
        assert logs[0].user_name == "Olena Admin"

    async def test_paid_payout_conflict(self, client, seed):
        payout_id = await seed()
        payload = {"status": "PAID", "payment_method": "CASH"}

        await client.patch(f"{BASE}/{payout_id}/status", json=payload)
        response = await client.patch(f"{BASE}/{payout_id}/status", json=payload)

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "PAYOUT_INVALID_STATUS_TRANSITION"
        assert body["context"]["current_status"] == "PAID"

    async def test_invalid_actor_header(self, client, seed):
        payout_id = await seed()

        response = await client.patch(
            f"{BASE}/{payout_id}/status",
            json={"status": "PAID", "payment_method": "CASH"},
            headers={"X-Actor-Id": "admin"},
        )

        assert response.status_code == 400


class TestClassInstallmentEndpoints:
    """Tests for class progress and installments."""

    async def test_pay_installment_and_progress(self, client, seed, scope):
        await seed(unit_type=TeacherPaymentUnit.CLASS)

        response = await client.patch(
            f"{BASE}/classes/{scope.class_id}/pay-installment",
            json={"amount": "100.00", "payment_method": "WALLET"},
            headers=ACTOR_HEADERS,
        )
        assert response.status_code == 200
        assert Decimal(response.json()["total_paid"]) == Decimal("100.00")

        response = await client.get(f"{BASE}/classes/{scope.class_id}/progress")
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["progress_percent"]) == Decimal("20.00")
        assert Decimal(body["remaining"]) == Decimal("400.00")
        assert body["status"] == "INSTALLMENT"

    async def test_installment_above_remaining(self, client, seed, scope):
        await seed(unit_type=TeacherPaymentUnit.CLASS)

        response = await client.patch(
            f"{BASE}/classes/{scope.class_id}/pay-installment",
            json={"amount": "500.01", "payment_method": "CASH"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "PAYOUT_AMOUNT_EXCEEDS_REMAINING"
        assert body["context"]["remaining"] == "500.00"

    async def test_zero_installment(self, client, seed, scope):
        await seed(unit_type=TeacherPaymentUnit.CLASS)

        response = await client.patch(
            f"{BASE}/classes/{scope.class_id}/pay-installment",
            json={"amount": "0", "payment_method": "CASH"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PAYOUT_AMOUNT"

    async def test_class_without_payout(self, client):
        response = await client.patch(
            f"{BASE}/classes/404/pay-installment",
            json={"amount": "10", "payment_method": "CASH"},
        )
        assert response.status_code == 404

        response = await client.get(f"{BASE}/classes/404/progress")
        assert response.status_code == 404


class TestAuditEndpoint:
    """Tests for GET /{id}/audit."""

    async def test_audit_trail_newest_first(self, client, seed):
        payout_id = await seed(unit_type=TeacherPaymentUnit.CLASS)
        await client.patch(
            f"{BASE}/{payout_id}/status",
            json={"status": "PAID", "payment_method": "CASH"},
            headers=ACTOR_HEADERS,
        )

        response = await client.get(f"{BASE}/{payout_id}/audit")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [item["action_type"] for item in body["items"]] == ["PAY", "CREATE"]
        paid = body["items"][0]
        assert paid["user_type"] == "user"
        assert paid["user_name"] == "Olena Admin"
        assert paid["changes_json"]["after"]["status"] == "PAID"
        assert body["items"][1]["user_type"] == "system"

    async def test_audit_filter_and_paging(self, client, seed, scope):
        payout_id = await seed(unit_type=TeacherPaymentUnit.CLASS)
        for amount in ("100.00", "150.00"):
            await client.patch(
                f"{BASE}/classes/{scope.class_id}/pay-installment",
                json={"amount": amount, "payment_method": "CASH"},
            )

        response = await client.get(
            f"{BASE}/{payout_id}/audit", params={"action_type": "INSTALLMENT", "limit": 1}
        )

        body = response.json()
        assert body["total"] == 2
        assert len(body["items"]) == 1
        assert body["items"][0]["action_type"] == "INSTALLMENT"

    async def test_audit_of_missing_payout(self, client):
        response = await client.get(f"{BASE}/9999/audit")

        assert response.status_code == 404
        assert response.json()["code"] == "PAYOUT_NOT_FOUND"
