"""Notification domain exports."""

from .aggregator import NotificationAggregator
from .toasts import Toast, ToastAction, ToastKind, ToastQueue

__all__ = ["NotificationAggregator", "Toast", "ToastAction", "ToastKind", "ToastQueue"]
