from .server import create_app, broadcast_tick

__all__ = ["create_app", "broadcast_tick"]
