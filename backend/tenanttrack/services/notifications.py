# backend/tenanttrack/services/notifications.py
from __future__ import annotations

import logging
from typing import Any, Protocol

from ..config import settings

log = logging.getLogger(__name__)

APPLICATION_SUBMITTED = "application_submitted"
LEASE_APPROVED = "lease_approved"
LEASE_DENIED = "lease_denied"
LEASE_ACTIVATED = "lease_activated"
LEASE_TERMINATED = "lease_terminated"


class Notifier(Protocol):
    def notify(self, kind: str, recipient: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier: records the message instead of delivering it."""

    def __init__(self, sender: str | None = None) -> None:
        self.sender = sender or settings.notify_sender

    def notify(self, kind: str, recipient: str, payload: dict[str, Any]) -> None:
        log.info("notification %s from %s to %s: %s", kind, self.sender, recipient, payload)


_notifier: Notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    return _notifier


def send(notifier: Notifier, kind: str, recipient: str | None, payload: dict[str, Any]) -> bool:
    """
    Fire-and-forget delivery: a failing notifier is logged and never affects
    the operation that triggered it. Call after commit.
    """
    if not recipient:
        return False
    try:
        notifier.notify(kind, recipient, payload)
        return True
    except Exception:
        log.exception("failed to send %s notification to %s", kind, recipient)
        return False
