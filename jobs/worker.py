"""
Dramatiq worker entry point.

Usage: ``dramatiq jobs.worker``
"""

from contempla.config.logging import setup_logging
from jobs.broker import broker  # noqa: F401
from jobs.tasks.outbox_relay import relay_outbox_events  # noqa: F401
from jobs.tasks.payment_reconciliation import reconcile_payments  # noqa: F401
from jobs.tasks.reservation_expiry import expire_reservations  # noqa: F401

setup_logging("worker")
