from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from partnerpay.affiliates.partners import partner_service
from partnerpay.api.main import create_app
from partnerpay.auth.models import Actor
from partnerpay.auth.tokens import create_access_token

API_KEY = {"X-API-Key": "test-conversion-key"}


def _bearer(actor: Actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor)}"}


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def admin_headers(admin):
    return _bearer(admin)


@pytest.fixture
def super_admin_headers(super_admin):
    return _bearer(super_admin)


@pytest.fixture
def second_link(admin, other_partner):
    return partner_service.create_link(admin, other_partner.id, code="OLLY-SHOP")


def _order(client, reference="ORD-1", total="200.00", code="PAT-SHOP"):
    body = {"platform": "SHOP", "event_type": "ORDER", "external_reference": reference, "amount": total}
    if code:
        body["affiliate_code"] = code
    return client.post("/api/v1/conversions", json=body, headers=API_KEY)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestClickTracking:

    def test_click_sets_attribution_cookies(self, client, shop_link):
        response = client.post("/api/v1/affiliate/click", json={"code": "pat-shop"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "tracked": True}
        assert client.cookies.get("affiliate_code") == "PAT-SHOP"
        assert client.cookies.get("affiliate_ref") == "PAT-SHOP"
        assert client.cookies.get("affiliate_session").startswith("aff_")

        set_cookies = response.headers.get_list("set-cookie")
        code_cookie = next(c for c in set_cookies if c.startswith("affiliate_code="))
        ref_cookie = next(c for c in set_cookies if c.startswith("affiliate_ref="))
        assert "Max-Age=2592000" in code_cookie
        assert "HttpOnly" in code_cookie
        assert "HttpOnly" not in ref_cookie

    def test_last_click_wins(self, client, shop_link, second_link):
        client.post("/api/v1/affiliate/click", json={"code": "PAT-SHOP"})
        client.post("/api/v1/affiliate/click", json={"code": "OLLY-SHOP"})

        assert client.cookies.get("affiliate_code") == "OLLY-SHOP"

    def test_bad_code_is_silent(self, client):
        response = client.post("/api/v1/affiliate/click", json={"code": "NOPE"})

        assert response.status_code == 200
        assert response.json()["tracked"] is False
        assert "set-cookie" not in response.headers

    def test_track_redirects_to_target(self, client, shop_link):
        response = client.get("/api/v1/affiliate/track", params={"code": "PAT-SHOP"}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://47industries.com/shop"
        assert client.cookies.get("affiliate_code") == "PAT-SHOP"

    def test_track_unknown_code_redirects_without_cookies(self, client):
        response = client.get("/api/v1/affiliate/track", params={"code": "NOPE"}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "https://47industries.com/shop"
        assert "set-cookie" not in response.headers


class TestConversions:

    def test_requires_api_key(self, client, shop_link):
        response = client.post(
            "/api/v1/conversions",
            json={"platform": "SHOP", "event_type": "ORDER", "external_reference": "ORD-1", "amount": "1.00"},
        )
        assert response.status_code == 401

    def test_order_scenario(self, client, partner, shop_link):
        first = _order(client)
        second = _order(client)

        assert first.status_code == 200
        body = first.json()
        assert Decimal(body["amount"]) == Decimal("10.00")
        assert body["status"] == "PENDING"
        assert body["duplicate"] is False
        assert second.json()["duplicate"] is True
        assert second.json()["commission_id"] == body["commission_id"]

    def test_cookie_is_used_when_body_has_no_code(self, client, partner, shop_link):
        client.post("/api/v1/affiliate/click", json={"code": "PAT-SHOP"})

        response = _order(client, code=None)

        assert response.status_code == 200
        assert response.json()["partner_id"] == partner.id

    def test_unknown_code_is_404(self, client, partner):
        response = _order(client, code="NOPE")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_lead_endpoints(self, client, partner, admin_headers):
        lead = client.post(
            "/api/v1/conversions/leads",
            json={"partner_id": partner.id, "lead_reference": "LEAD-1", "contract_value": "1000.00"},
            headers=admin_headers,
        )
        assert lead.status_code == 200
        assert Decimal(lead.json()["amount"]) == Decimal("500.00")

        cycle = client.post(
            f"/api/v1/conversions/leads/{lead.json()['referral_id']}/cycles",
            json={"billing_reference": "2026-10", "monthly_amount": "200.00"},
            headers=admin_headers,
        )
        assert cycle.status_code == 200
        assert Decimal(cycle.json()["amount"]) == Decimal("60.00")


class TestAdmin:

    def test_admin_routes_require_token(self, client):
        assert client.get("/api/v1/admin/commissions").status_code == 401

    def test_partner_token_is_forbidden(self, client, partner_actor):
        response = client.get("/api/v1/admin/commissions", headers=_bearer(partner_actor))
        assert response.status_code == 403

    def test_commission_review_and_payout_flow(self, client, partner, shop_link, admin_headers, super_admin_headers):
        commission_id = _order(client).json()["commission_id"]

        listing = client.get("/api/v1/admin/commissions", params={"status": "PENDING"}, headers=admin_headers)
        assert listing.json()["total"] == 1
        assert listing.json()["totals"]["pending"]["count"] == 1

        approve = client.put(
            "/api/v1/admin/commissions/approve",
            json={"commission_ids": [commission_id]},
            headers=admin_headers,
        )
        assert approve.json()["count"] == 1

        created = client.post("/api/v1/admin/payouts", json={"partner_id": partner.id}, headers=admin_headers)
        assert created.status_code == 201
        payout = created.json()
        assert Decimal(payout["amount"]) == Decimal("10.00")
        assert [c["id"] for c in payout["commissions"]] == [commission_id]

        # Linked commissions cannot be deleted
        delete = client.delete(f"/api/v1/admin/commissions/{commission_id}", headers=admin_headers)
        assert delete.status_code == 409
        assert delete.json()["code"] == "INVALID_STATE"

        # Plain admins cannot execute; super admins hit the missing destination
        assert client.post(f"/api/v1/admin/payouts/{payout['id']}/execute", headers=admin_headers).status_code == 403
        execute = client.post(f"/api/v1/admin/payouts/{payout['id']}/execute", headers=super_admin_headers)
        assert execute.status_code == 502
        assert execute.json()["code"] == "EXTERNAL_DEPENDENCY_FAILURE"

        cancelled = client.delete(f"/api/v1/admin/payouts/{payout['id']}", headers=admin_headers)
        assert cancelled.json()["status"] == "CANCELLED"

        commission = client.get(f"/api/v1/admin/commissions/{commission_id}", headers=admin_headers).json()
        assert commission["status"] == "PENDING"
        assert commission["payout_id"] is None

    def test_mark_paid(self, client, partner, shop_link, admin_headers):
        _order(client)
        payout = client.post("/api/v1/admin/payouts", json={"partner_id": partner.id}, headers=admin_headers).json()

        paid = client.post(
            f"/api/v1/admin/payouts/{payout['id']}/mark-paid",
            json={"method": "ZELLE", "reference": "ZL-1"},
            headers=admin_headers,
        )

        assert paid.status_code == 200
        assert paid.json()["status"] == "PAID"
        assert all(c["status"] == "PAID" for c in paid.json()["commissions"])

        stats = client.get("/api/v1/admin/payouts", headers=admin_headers).json()["stats"]
        assert Decimal(stats["paid_amount"]) == Decimal("10.00")

    def test_empty_payout_is_400(self, client, partner, admin_headers):
        response = client.post("/api/v1/admin/payouts", json={"partner_id": partner.id}, headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["code"] == "NO_ELIGIBLE_COMMISSIONS"

    def test_empty_selection_is_400(self, client, partner, shop_link, admin_headers):
        _order(client)

        response = client.post(
            "/api/v1/admin/payouts",
            json={"partner_id": partner.id, "commission_ids": []},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "NO_ELIGIBLE_COMMISSIONS"
        assert client.get("/api/v1/admin/payouts", headers=admin_headers).json()["total"] == 0

    def test_create_payout_returns_linked_commissions(self, client, partner, shop_link, admin_headers):
        first = _order(client, reference="ORD-1").json()["commission_id"]
        second = _order(client, reference="ORD-2").json()["commission_id"]

        response = client.post("/api/v1/admin/payouts", json={"partner_id": partner.id}, headers=admin_headers)

        assert response.status_code == 201
        body = response.json()
        assert sorted(c["id"] for c in body["commissions"]) == [first, second]
        assert all(c["payout_id"] == body["id"] for c in body["commissions"])
        assert Decimal(body["amount"]) == Decimal("20.00")

    def test_partner_and_link_management(self, client, admin_headers):
        created = client.post(
            "/api/v1/admin/partners",
            json={"name": "Riley Rider", "email": "riley@example.com", "shop_commission_rate": "7.5"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        partner = created.json()
        assert Decimal(partner["shop_commission_rate"]) == Decimal("7.5")
        assert len(partner["affiliate_code"]) == 8

        link = client.post(
            f"/api/v1/admin/partners/{partner['id']}/links",
            json={"platform": "MOTOREV", "code": "RILEY-APP"},
            headers=admin_headers,
        )
        assert link.status_code == 201
        assert link.json()["url"] == "https://motorevapp.com/signup?ref=RILEY-APP"

        taken = client.post(
            f"/api/v1/admin/partners/{partner['id']}/links",
            json={"code": "RILEY-APP"},
            headers=admin_headers,
        )
        assert taken.status_code == 400
        assert taken.json()["code"] == "VALIDATION"

        deactivated = client.delete(f"/api/v1/admin/links/{link.json()['id']}", headers=admin_headers)
        assert deactivated.json()["is_active"] is False


class TestPartnerPortal:

    def test_dashboard(self, client, partner, shop_link, partner_actor):
        client.post("/api/v1/affiliate/click", json={"code": "PAT-SHOP"})
        _order(client)

        response = client.get("/api/v1/partner/dashboard", headers=_bearer(partner_actor))

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["total_clicks"] == 1
        assert summary["total_referrals"] == 1
        assert Decimal(str(summary["pending_commissions"])) == Decimal("10.00")
        assert response.json()["links"][0]["code"] == "PAT-SHOP"

    def test_partner_sees_only_own_commissions(self, client, partner, shop_link, second_link, partner_actor):
        _order(client, reference="ORD-1")
        _order(client, reference="ORD-2", code="OLLY-SHOP")

        response = client.get("/api/v1/partner/commissions", headers=_bearer(partner_actor))

        assert response.json()["total"] == 1
        assert response.json()["commissions"][0]["partner_id"] == partner.id

    def test_admin_token_is_not_a_partner(self, client, admin_headers):
        assert client.get("/api/v1/partner/dashboard", headers=admin_headers).status_code == 403
