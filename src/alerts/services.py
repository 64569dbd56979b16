"""Service functions for the alerts app."""
import logging

from django.db.models import Q

from alerts.models import Alert

logger = logging.getLogger("fulfillment")


def create_alert(alert_type, severity, title, message, order=None, pickup_site=None, payload=None):
    """Create and return a new Alert instance.

    Parameters
    ----------
    alert_type : str
        One of ``Alert.Type`` values.
    severity : str
        One of ``Alert.Severity`` values.
    title : str
        Short human-readable title (max 200 chars).
    message : str
        Detailed description of the alert.
    order : orders.models.Order, optional
    pickup_site : pickup_sites.models.PickupSite, optional
    payload : dict, optional
        Extra JSON-serialisable data to store on the alert.

    Returns
    -------
    Alert
        The newly created ``Alert`` instance.
    """
    alert = Alert.objects.create(
        order=order,
        pickup_site=pickup_site,
        alert_type=alert_type,
        severity=severity,
        title=title,
        message=message,
        payload=payload or {},
    )
    logger.info("Alert created: [%s] %s", severity, title)
    return alert


def raise_confirmation_review_alert(order, failed_attempts: int) -> Alert:
    return create_alert(
        alert_type=Alert.Type.CONFIRMATION_REVIEW,
        severity=Alert.Severity.WARNING,
        title=f"Confirmation review: {order.order_number}",
        message=(
            f"Order {order.order_number} has {failed_attempts} rejected confirmation "
            f"attempts while {order.status}. Review the evidence or override."
        ),
        order=order,
        payload={
            "order_id": str(order.pk),
            "order_number": order.order_number,
            "status": order.status,
            "failed_attempts": failed_attempts,
        },
    )


def alerts_visible_to(user):
    """Alerts visible to *user*: admins see all, site managers their site's."""
    from accounts.services import get_agent_for_user

    qs = Alert.objects.all()
    if user.is_fulfillment_admin:
        return qs
    agent = get_agent_for_user(user)
    if agent is None or not agent.is_site_manager:
        return qs.none()
    return qs.filter(
        Q(pickup_site_id=agent.assigned_site_id) | Q(order__pickup_site_id=agent.assigned_site_id)
    )
