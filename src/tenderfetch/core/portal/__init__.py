"""Portal navigation."""

from .walker import ConnectStatus, NavigationWalker, WalkerState

__all__ = ["ConnectStatus", "NavigationWalker", "WalkerState"]
