"""Identity domain exports."""

from .bridge import AuthBridge
from .models import ActorIdentity, ActorRole
from .tokens import TokenStore

__all__ = ["ActorIdentity", "ActorRole", "AuthBridge", "TokenStore"]
