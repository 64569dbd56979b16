import pytest
from rest_framework.test import APIClient

from commissions.models import Commission
from orders.models import OrderStatus


def _client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def published(make_order, drive):
    return drive(make_order(), OrderStatus.AVAILABLE_FOR_PICKUP)


@pytest.mark.django_db
class TestClaimEndpoint:
    def test_first_claim_wins_second_conflicts(self, published, courier, courier2):
        url = f"/api/v1/orders/{published.pk}/claim/"

        first = _client(courier.user).post(url)
        assert first.status_code == 200
        assert first.data["status"] == OrderStatus.CLAIMED_BY_COURIER
        assert first.data["agent_code"] == courier.agent_code

        second = _client(courier2.user).post(url)
        assert second.status_code == 409
        assert second.data["code"] == "conflict"
        assert second.data["current_status"] == OrderStatus.CLAIMED_BY_COURIER

    def test_buyer_cannot_claim(self, published, buyer):
        response = _client(buyer).post(f"/api/v1/orders/{published.pk}/claim/")
        assert response.status_code == 403

    def test_claimable_list(self, published, courier):
        response = _client(courier.user).get("/api/v1/orders/claimable/")
        assert response.status_code == 200
        assert [row["id"] for row in response.data["results"]] == [str(published.pk)]

    def test_unknown_order(self, courier):
        response = _client(courier.user).post("/api/v1/orders/00000000-0000-0000-0000-000000000000/claim/")
        assert response.status_code == 404
        assert response.data["code"] == "not_found"


@pytest.mark.django_db
class TestWorkflowEndpoints:
    def test_advance_with_stale_expected_status(self, published, courier):
        client = _client(courier.user)
        client.post(f"/api/v1/orders/{published.pk}/claim/")
        response = client.post(
            f"/api/v1/orders/{published.pk}/advance/",
            {"expected_status": OrderStatus.EN_ROUTE_TO_SELLER, "target_status": OrderStatus.AT_SELLER},
            format="json",
        )
        assert response.status_code == 409

    def test_gps_out_of_tolerance(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.EN_ROUTE_TO_SITE)
        response = _client(courier.user).post(
            f"/api/v1/orders/{order.pk}/confirm/",
            {"kind": "GPS", "latitude": -1.9600, "longitude": 30.0619},
            format="json",
        )
        assert response.status_code == 400
        assert response.data["code"] == "validation_error"

    def test_gps_within_tolerance(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.EN_ROUTE_TO_SITE)
        response = _client(courier.user).post(
            f"/api/v1/orders/{order.pk}/confirm/",
            {"kind": "GPS", "latitude": -1.9440, "longitude": 30.0619},
            format="json",
        )
        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.AT_SITE

    def test_issue_code_and_buyer_sees_it(self, make_order, drive, site_manager, buyer):
        order = drive(make_order(), OrderStatus.AT_SITE)
        response = _client(site_manager.user).post(f"/api/v1/orders/{order.pk}/issue-code/")
        assert response.status_code == 200
        assert response.data["qr_image"].startswith("data:image/png;base64,")
        assert response.data["order"]["delivery_code"] is None

        detail = _client(buyer).get(f"/api/v1/orders/{order.pk}/")
        assert detail.data["delivery_code"] == response.data["code"]

    def test_history(self, published, seller):
        response = _client(seller).get(f"/api/v1/orders/{published.pk}/history/")
        assert response.status_code == 200
        assert [row["to_status"] for row in response.data] == [
            OrderStatus.CREATED,
            OrderStatus.AVAILABLE_FOR_PICKUP,
        ]


@pytest.mark.django_db
class TestOverrideEndpoint:
    def test_non_admin_forbidden(self, published, courier):
        response = _client(courier.user).post(
            f"/api/v1/orders/{published.pk}/override/",
            {"target_status": OrderStatus.CANCELLED, "justification": "nope"},
            format="json",
        )
        assert response.status_code == 403

    def test_admin_cancels(self, published, admin_user):
        response = _client(admin_user).post(
            f"/api/v1/orders/{published.pk}/override/",
            {"target_status": OrderStatus.CANCELLED, "justification": "Seller out of stock"},
            format="json",
        )
        assert response.status_code == 200
        assert response.data["status"] == OrderStatus.CANCELLED

    def test_backward_override_is_policy_violation(self, make_order, drive, admin_user):
        order = drive(make_order(), OrderStatus.AT_SELLER)
        response = _client(admin_user).post(
            f"/api/v1/orders/{order.pk}/override/",
            {"target_status": OrderStatus.AVAILABLE_FOR_PICKUP, "justification": "Courier quit"},
            format="json",
        )
        assert response.status_code == 422
        assert response.data["code"] == "policy_violation"


@pytest.mark.django_db
class TestScoping:
    def test_order_list_is_scoped(self, make_order, drive, buyer, courier, courier2, admin_user):
        claimed = drive(make_order(), OrderStatus.CLAIMED_BY_COURIER)
        drive(make_order(), OrderStatus.AVAILABLE_FOR_PICKUP)

        assert _client(admin_user).get("/api/v1/orders/").data["count"] == 2
        assert _client(buyer).get("/api/v1/orders/").data["count"] == 2
        courier_rows = _client(courier.user).get("/api/v1/orders/").data["results"]
        assert [row["id"] for row in courier_rows] == [str(claimed.pk)]
        assert _client(courier2.user).get("/api/v1/orders/").data["count"] == 0

    def test_commission_review_flow(self, make_order, drive, courier, admin_user):
        order = drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)
        courier_client = _client(courier.user)

        commission = courier_client.get(f"/api/v1/orders/{order.pk}/commission/")
        assert commission.status_code == 200
        assert commission.data["amount"] == "500.00"
        assert commission.data["status"] == Commission.Status.PENDING

        forbidden = courier_client.post(
            f"/api/v1/commissions/{commission.data['id']}/review/", {"decision": "approved"}, format="json",
        )
        assert forbidden.status_code == 403

        approved = _client(admin_user).post(
            f"/api/v1/commissions/{commission.data['id']}/review/", {"decision": "approved"}, format="json",
        )
        assert approved.status_code == 200
        assert approved.data["status"] == Commission.Status.APPROVED

        summary = courier_client.get("/api/v1/commissions/summary/")
        assert summary.data["approved"]["count"] == 1


@pytest.mark.django_db
class TestMalformedIds:
    @pytest.mark.parametrize("path", ["review", "mark-paid"])
    def test_non_numeric_commission_id_is_not_found(self, admin_user, path):
        response = _client(admin_user).post(
            f"/api/v1/commissions/abc/{path}/", {"decision": "approved"}, format="json",
        )
        assert response.status_code == 404
        assert response.data["code"] == "not_found"

    def test_non_numeric_payment_proof_id_is_not_found(self, admin_user):
        response = _client(admin_user).post(
            "/api/v1/payment-proofs/abc/review/", {"decision": "approved"}, format="json",
        )
        assert response.status_code == 404
        assert response.data["code"] == "not_found"


@pytest.mark.django_db
class TestPaymentProofEndpoint:
    def test_upload_with_receipt(self, make_order, drive, courier, make_receipt):
        order = drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)
        response = _client(courier.user).post(
            "/api/v1/payment-proofs/",
            {"order_id": str(order.pk), "amount": "10000.00", "method": "CASH", "attachment": make_receipt()},
            format="multipart",
        )
        assert response.status_code == 201
        assert response.data["status"] == "pending"
        assert "payment_proofs/" in response.data["attachment"]

    def test_receipt_is_required(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)
        response = _client(courier.user).post(
            "/api/v1/payment-proofs/",
            {"order_id": str(order.pk), "amount": "10000.00", "method": "CASH"},
            format="multipart",
        )
        assert response.status_code == 400
        assert response.data["code"] == "validation_error"


@pytest.mark.django_db
class TestReviewAndTrackingEndpoints:
    def test_admin_lists_rejected_evidence(self, make_order, drive, courier, admin_user):
        order = drive(make_order(), OrderStatus.EN_ROUTE_TO_SITE)
        _client(courier.user).post(
            f"/api/v1/orders/{order.pk}/confirm/",
            {"kind": "GPS", "latitude": -1.9600, "longitude": 30.0619},
            format="json",
        )

        url = f"/api/v1/orders/{order.pk}/confirmations/"
        assert _client(courier.user).get(url).status_code == 403
        response = _client(admin_user).get(url, {"verified": "false"})
        assert response.status_code == 200
        assert len(response.data) == 1
        assert response.data[0]["kind"] == "GPS"
        assert response.data[0]["is_verified"] is False
        assert "tolerance" in response.data[0]["rejection_reason"]

    def test_gps_update_then_tracking(self, make_order, drive, courier, courier2, buyer):
        order = drive(make_order(), OrderStatus.PICKED_UP)
        client = _client(courier.user)
        created = client.post(
            f"/api/v1/orders/{order.pk}/gps-update/",
            {"latitude": -1.95, "longitude": 30.05, "accuracy": 12},
            format="json",
        )
        assert created.status_code == 201
        assert created.data["status_at_time"] == OrderStatus.PICKED_UP

        other = _client(courier2.user).post(
            f"/api/v1/orders/{order.pk}/gps-update/", {"latitude": -1.95, "longitude": 30.05}, format="json",
        )
        assert other.status_code == 403

        trail = _client(buyer).get(f"/api/v1/orders/{order.pk}/tracking/")
        assert trail.status_code == 200
        assert [row["accuracy"] for row in trail.data] == [12.0]
        assert _client(courier2.user).get(f"/api/v1/orders/{order.pk}/tracking/").status_code == 404


@pytest.mark.django_db
def test_token_then_bearer_access(courier):
    client = APIClient()
    token = client.post(
        "/api/v1/auth/token/",
        {"email": courier.user.email, "password": "testpass123"},
        format="json",
    )
    assert token.status_code == 200

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.data['access']}")
    assert client.get("/api/v1/orders/claimable/").status_code == 200
    assert APIClient().get("/api/v1/orders/claimable/").status_code == 401
