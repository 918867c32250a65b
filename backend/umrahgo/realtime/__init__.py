"""Realtime transport exports."""

from .registry import HandlerRegistry, Subscription
from .state import ConnectionState

__all__ = ["ConnectionState", "HandlerRegistry", "Subscription"]
