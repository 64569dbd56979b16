"""Signals emitted by the Order Ledger.

``order_status_changed`` is sent once per committed status change with
``sender=Order`` and keyword arguments ``order``, ``from_status``,
``to_status``, ``actor`` and ``is_override``. Notification dispatch
subscribes to it; the ledger never waits on the receivers.
"""
from django.dispatch import Signal

order_status_changed = Signal()
