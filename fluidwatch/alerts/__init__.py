from .alert_manager import AlertManager, AlertPayload

__all__ = ["AlertManager", "AlertPayload"]
