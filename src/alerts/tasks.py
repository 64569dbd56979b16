"""Celery tasks for the alerts app."""
import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger("fulfillment")


@shared_task(name="alerts.tasks.check_stuck_orders")
def check_stuck_orders():
    """Flag non-terminal orders that have not changed status within the timeout.

    The threshold is ``settings.STUCK_ORDER_TIMEOUT_HOURS`` (default 24).
    At most one ORDER_STUCK alert is created per order per day; the order
    itself is never transitioned.
    """
    from alerts.models import Alert
    from alerts.services import create_alert
    from orders.models import TERMINAL_STATUSES, Order
    from orders.services import flag_for_review

    threshold_hours = getattr(settings, "STUCK_ORDER_TIMEOUT_HOURS", 24)
    now = timezone.now()
    cutoff = now - timedelta(hours=threshold_hours)

    stuck_orders = list(
        Order.objects.filter(status_changed_at__lte=cutoff)
        .exclude(status__in=TERMINAL_STATUSES)
        .select_related("pickup_site", "agent")
    )

    today = timezone.localdate()
    existing_order_ids = set(
        Alert.objects.filter(
            alert_type=Alert.Type.ORDER_STUCK,
            order_id__in=[order.pk for order in stuck_orders],
            created_at__date=today,
        ).values_list("order_id", flat=True)
    )

    alert_count = 0

    for order in stuck_orders:
        if order.pk in existing_order_ids:
            continue
        hours_waiting = (now - order.status_changed_at).total_seconds() / 3600
        if not order.needs_review:
            flag_for_review(order, Order.ReviewReason.STUCK)
        create_alert(
            alert_type=Alert.Type.ORDER_STUCK,
            severity=Alert.Severity.WARNING,
            title=f"Order stuck: {order.order_number}",
            message=(
                f"Order {order.order_number} has been {order.status} "
                f"for {hours_waiting:.1f} hours (threshold: {threshold_hours}h)."
            ),
            order=order,
            pickup_site=order.pickup_site,
            payload={
                "order_id": str(order.pk),
                "order_number": order.order_number,
                "status": order.status,
                "agent_code": order.agent.agent_code if order.agent else None,
                "hours_waiting": round(hours_waiting, 1),
            },
        )
        existing_order_ids.add(order.pk)
        alert_count += 1

    logger.info("check_stuck_orders completed: %d alerts created.", alert_count)
    return f"{alert_count} alerts created"


@shared_task(name="alerts.tasks.verify_site_loads")
def verify_site_loads():
    """Recount present-at-site orders and raise CAPACITY_DRIFT where the counter disagrees."""
    from alerts.models import Alert
    from alerts.services import create_alert
    from pickup_sites.services import find_load_drift

    alert_count = 0
    for site, actual in find_load_drift():
        logger.error(
            "Load drift at pickup site %s: stored %d, actual %d",
            site.pk, site.current_load, actual,
        )
        create_alert(
            alert_type=Alert.Type.CAPACITY_DRIFT,
            severity=Alert.Severity.CRITICAL,
            title=f"Load drift at {site.name}",
            message=(
                f"Pickup site {site.name} records a load of {site.current_load} "
                f"but {actual} orders are physically present."
            ),
            pickup_site=site,
            payload={
                "site_id": str(site.pk),
                "stored_load": site.current_load,
                "actual_load": actual,
            },
        )
        alert_count += 1

    logger.info("verify_site_loads completed: %d alerts created.", alert_count)
    return f"{alert_count} alerts created"
