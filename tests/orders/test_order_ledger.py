from decimal import Decimal

import pytest

from commissions.models import Commission
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    PolicyViolationError,
    ValidationError,
)
from core.models import AuditLog
from orders.models import Order, OrderStatus, OrderStatusHistory, STATUS_RANK
from orders.services import (
    admin_override_transition,
    advance_order,
    cancel_order,
    create_order,
    get_order_history,
    publish_for_pickup,
    transition,
)
from orders.signals import order_status_changed


@pytest.mark.django_db
class TestCreateOrder:
    def test_new_order_starts_created(self, make_order):
        order = make_order()
        assert order.status == OrderStatus.CREATED
        assert order.agent is None
        assert order.order_number.startswith("ORD-")
        history = list(get_order_history(order.pk))
        assert [(h.from_status, h.to_status) for h in history] == [(None, "CREATED")]

    def test_total_must_be_positive(self, buyer, seller, site):
        with pytest.raises(ValidationError):
            create_order(buyer=buyer, seller=seller, total=Decimal("0"), pickup_site=site)

    @pytest.mark.parametrize("total", ["NaN", "Infinity", "-Infinity", "sNaN"])
    def test_total_must_be_finite(self, buyer, seller, site, total):
        with pytest.raises(ValidationError):
            create_order(buyer=buyer, seller=seller, total=total, pickup_site=site)

    def test_manual_order_requires_site_manager(self, buyer, seller, site):
        with pytest.raises(AuthorizationError):
            create_order(
                buyer=buyer,
                seller=seller,
                total=Decimal("5000"),
                source=Order.Source.MANUAL,
                created_by=seller,
            )

    def test_manual_order_defaults_to_manager_site(self, buyer, seller, site, site_manager):
        order = create_order(
            buyer=buyer,
            seller=seller,
            total=Decimal("5000"),
            source=Order.Source.MANUAL,
            created_by=site_manager.user,
        )
        assert order.pickup_site == site
        assert order.source == Order.Source.MANUAL


@pytest.mark.django_db
class TestTransition:
    def test_publish_moves_to_available(self, make_order, seller):
        order = publish_for_pickup(make_order().pk, seller)
        assert order.status == OrderStatus.AVAILABLE_FOR_PICKUP

    def test_only_seller_or_admin_publishes(self, make_order, buyer):
        with pytest.raises(AuthorizationError):
            publish_for_pickup(make_order().pk, buyer)

    def test_stale_expected_status_is_a_conflict(self, make_order, seller):
        order = make_order()
        publish_for_pickup(order.pk, seller)
        with pytest.raises(ConflictError):
            transition(order.pk, OrderStatus.CREATED, OrderStatus.AVAILABLE_FOR_PICKUP, seller)

    def test_skipping_a_leg_is_refused(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.PICKED_UP)
        with pytest.raises(PolicyViolationError):
            transition(order.pk, OrderStatus.PICKED_UP, OrderStatus.AT_SITE, courier.user)
        order.refresh_from_db()
        assert order.status == OrderStatus.PICKED_UP

    def test_unknown_status_value_is_refused(self, make_order, seller):
        order = make_order()
        with pytest.raises(PolicyViolationError):
            transition(order.pk, "CREATED", "PAID", seller)
        with pytest.raises(PolicyViolationError):
            transition(order.pk, "created", "AVAILABLE_FOR_PICKUP", seller)

    def test_backward_edge_is_refused(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.AT_SELLER)
        with pytest.raises(PolicyViolationError):
            transition(order.pk, OrderStatus.AT_SELLER, OrderStatus.EN_ROUTE_TO_SELLER, courier.user)

    def test_claimed_status_requires_agent(self, make_order, seller, admin_user):
        order = publish_for_pickup(make_order().pk, seller)
        with pytest.raises(PolicyViolationError):
            transition(order.pk, OrderStatus.AVAILABLE_FOR_PICKUP, OrderStatus.CLAIMED_BY_COURIER, admin_user)

    def test_history_is_monotonic(self, make_order, drive):
        order = drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)
        history = list(get_order_history(order.pk))
        assert len(history) == 10
        ranks = [STATUS_RANK[h.to_status] for h in history]
        assert ranks == sorted(ranks)
        assert all(not h.is_override for h in history)
        for previous, current in zip(history, history[1:]):
            assert current.from_status == previous.to_status

    def test_history_entries_are_immutable(self, make_order):
        entry = OrderStatusHistory.objects.get(order=make_order())
        entry.reason = "edited"
        with pytest.raises(ValueError):
            entry.save()

    def test_signal_is_sent_after_commit(self, make_order, seller, django_capture_on_commit_callbacks):
        received = []

        def receiver(sender, order, from_status, to_status, **kwargs):
            received.append((from_status, to_status))

        order_status_changed.connect(receiver)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                publish_for_pickup(make_order().pk, seller)
        finally:
            order_status_changed.disconnect(receiver)
        assert received == [("CREATED", "AVAILABLE_FOR_PICKUP")]


@pytest.mark.django_db
class TestAdvanceOrder:
    def test_assigned_courier_advances(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.CLAIMED_BY_COURIER)
        order = advance_order(
            order.pk, OrderStatus.CLAIMED_BY_COURIER, OrderStatus.EN_ROUTE_TO_SELLER, courier.user
        )
        assert order.status == OrderStatus.EN_ROUTE_TO_SELLER

    def test_other_courier_cannot_advance(self, make_order, drive, courier2):
        order = drive(make_order(), OrderStatus.CLAIMED_BY_COURIER)
        with pytest.raises(AuthorizationError):
            advance_order(order.pk, OrderStatus.CLAIMED_BY_COURIER, OrderStatus.EN_ROUTE_TO_SELLER, courier2.user)

    def test_evidence_legs_are_refused(self, make_order, drive, courier):
        order = drive(make_order(), OrderStatus.AT_SELLER)
        with pytest.raises(PolicyViolationError):
            advance_order(order.pk, OrderStatus.AT_SELLER, OrderStatus.PICKED_UP, courier.user)


@pytest.mark.django_db
class TestAdminOverride:
    def test_requires_admin(self, make_order, seller):
        with pytest.raises(AuthorizationError):
            admin_override_transition(make_order().pk, OrderStatus.CANCELLED, "dup", seller)

    def test_requires_justification(self, make_order, admin_user):
        with pytest.raises(ValidationError):
            admin_override_transition(make_order().pk, OrderStatus.CANCELLED, "  ", admin_user)

    def test_override_is_logged_distinctly(self, make_order, admin_user):
        order = admin_override_transition(make_order().pk, OrderStatus.CANCELLED, "Buyer fraud", admin_user)
        assert order.status == OrderStatus.CANCELLED
        last = get_order_history(order.pk).last()
        assert last.is_override is True
        assert last.reason == "Buyer fraud"
        assert AuditLog.objects.filter(action="ADMIN_OVERRIDE", entity_id=str(order.pk)).exists()

    def test_forward_jump_skips_evidence(self, make_order, drive, admin_user):
        order = drive(make_order(), OrderStatus.EN_ROUTE_TO_SELLER)
        order = admin_override_transition(order.pk, OrderStatus.PICKED_UP, "Seller confirmed by phone", admin_user)
        assert order.status == OrderStatus.PICKED_UP

    def test_backward_override_is_refused(self, make_order, drive, admin_user):
        order = drive(make_order(), OrderStatus.AT_SELLER)
        with pytest.raises(PolicyViolationError):
            admin_override_transition(order.pk, OrderStatus.CREATED, "undo", admin_user)

    def test_terminal_orders_cannot_be_overridden(self, make_order, admin_user):
        order = cancel_order(make_order().pk, "Out of stock", admin_user)
        with pytest.raises(PolicyViolationError):
            admin_override_transition(order.pk, OrderStatus.AVAILABLE_FOR_PICKUP, "reopen", admin_user)

    def test_siteless_order_cannot_become_claimable(self, make_order, admin_user):
        order = make_order(pickup_site=None)
        with pytest.raises(PolicyViolationError):
            admin_override_transition(order.pk, OrderStatus.AVAILABLE_FOR_PICKUP, "rush", admin_user)
        order.refresh_from_db()
        assert order.status == OrderStatus.CREATED

        cancelled = admin_override_transition(order.pk, OrderStatus.CANCELLED, "No site chosen", admin_user)
        assert cancelled.status == OrderStatus.CANCELLED

    def test_override_past_claim_needs_a_courier(self, make_order, seller, admin_user):
        order = publish_for_pickup(make_order().pk, seller)
        with pytest.raises(PolicyViolationError):
            admin_override_transition(order.pk, OrderStatus.AT_SELLER, "skip", admin_user)

    def test_cancel_at_site_releases_capacity_and_rejects_pending(self, make_order, drive, site, admin_user):
        order = drive(make_order(), OrderStatus.AT_SITE)
        site.refresh_from_db()
        assert site.current_load == 1
        assert Commission.objects.filter(order=order, status=Commission.Status.PENDING).count() == 1

        cancel_order(order.pk, "Parcel damaged", admin_user)

        site.refresh_from_db()
        assert site.current_load == 0
        assert not Commission.objects.filter(order=order, status=Commission.Status.PENDING).exists()
        assert Commission.objects.filter(order=order, status=Commission.Status.REJECTED).count() == 1
