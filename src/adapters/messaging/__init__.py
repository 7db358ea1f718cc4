"""Messaging adapters - Notification delivery."""

from .console import ConsoleNotificationPublisher

__all__ = ["ConsoleNotificationPublisher"]
