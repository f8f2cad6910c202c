"""HTTP service mode for ghostsite."""

from .app import RebuildGuard, ServiceThread, create_app
from .reload import ReloadBroadcaster

__all__ = ["RebuildGuard", "ReloadBroadcaster", "ServiceThread", "create_app"]
