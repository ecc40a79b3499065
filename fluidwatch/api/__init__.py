from .server import broadcast_alert, create_app

__all__ = ["broadcast_alert", "create_app"]
