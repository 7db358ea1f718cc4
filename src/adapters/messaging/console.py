"""
Console notification publisher - Implements NotificationPublisher protocol.

This module provides a console-based implementation of the domain's
notification port, logging events instead of handing them to a broker.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class ConsoleNotificationPublisher:
    """
    Implements NotificationPublisher protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints events to stdout.
    """

    def publish(self, recipient_id: int, event_type: str, payload: dict[str, Any]) -> None:
        """
        Log an event to the console (simulates push delivery).

        In production, this would be replaced with a broker producer.
        Delivery is fire-and-forget: nothing is returned or awaited.

        Args:
            recipient_id: User the event is addressed to
            event_type: Stable type tag, e.g. FRIEND_REQUEST
            payload: Event body
        """
        logger.info(
            "[NOTIFY] Recipient: %s Event: %s Payload: %s", recipient_id, event_type, payload
        )
