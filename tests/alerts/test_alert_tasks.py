from datetime import timedelta

import pytest
from django.utils import timezone

from alerts.models import Alert
from alerts.services import alerts_visible_to, create_alert
from alerts.tasks import check_stuck_orders, verify_site_loads
from orders.models import Order, OrderStatus
from pickup_sites.models import PickupSite


def _age(order, hours):
    Order.objects.filter(pk=order.pk).update(status_changed_at=timezone.now() - timedelta(hours=hours))


@pytest.mark.django_db
def test_check_stuck_orders_is_idempotent_per_day(make_order, drive):
    order = drive(make_order(), OrderStatus.CLAIMED_BY_COURIER)
    _age(order, 30)

    check_stuck_orders()
    check_stuck_orders()

    assert Alert.objects.filter(order=order, alert_type=Alert.Type.ORDER_STUCK).count() == 1
    order.refresh_from_db()
    assert order.needs_review is True
    assert order.review_reason == Order.ReviewReason.STUCK
    assert order.status == OrderStatus.CLAIMED_BY_COURIER


@pytest.mark.django_db
def test_check_stuck_orders_ignores_recent_and_terminal(make_order, drive, admin_user):
    fresh = drive(make_order(), OrderStatus.AVAILABLE_FOR_PICKUP)
    done = drive(make_order(), OrderStatus.COLLECTED_BY_BUYER)
    _age(done, 72)

    result = check_stuck_orders()

    assert result == "0 alerts created"
    assert not Alert.objects.filter(order__in=[fresh, done]).exists()


@pytest.mark.django_db
def test_stuck_alert_carries_order_context(make_order, drive, courier):
    order = drive(make_order(), OrderStatus.AT_SELLER)
    _age(order, 25)

    check_stuck_orders()

    alert = Alert.objects.get(order=order)
    assert alert.severity == Alert.Severity.WARNING
    assert alert.payload["agent_code"] == courier.agent_code
    assert alert.payload["status"] == OrderStatus.AT_SELLER


@pytest.mark.django_db
def test_verify_site_loads_raises_drift(make_order, drive, site, other_site):
    drive(make_order(), OrderStatus.AT_SITE)
    assert verify_site_loads() == "0 alerts created"

    PickupSite.objects.filter(pk=site.pk).update(current_load=2)
    verify_site_loads()

    alert = Alert.objects.get(alert_type=Alert.Type.CAPACITY_DRIFT)
    assert alert.severity == Alert.Severity.CRITICAL
    assert alert.pickup_site == site
    assert alert.payload == {"site_id": str(site.pk), "stored_load": 2, "actual_load": 1}


@pytest.mark.django_db
def test_alerts_visible_to_site_manager_only_for_own_site(site, other_site, site_manager, admin_user):
    mine = create_alert(Alert.Type.CAPACITY_DRIFT, Alert.Severity.CRITICAL, "Mine", "m", pickup_site=site)
    create_alert(Alert.Type.CAPACITY_DRIFT, Alert.Severity.CRITICAL, "Theirs", "t", pickup_site=other_site)

    assert list(alerts_visible_to(site_manager.user)) == [mine]
    assert alerts_visible_to(admin_user).count() == 2
