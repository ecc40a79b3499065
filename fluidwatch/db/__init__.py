from .repository import BalanceRepository, DeviceInfo, PatientInfo

__all__ = ["BalanceRepository", "DeviceInfo", "PatientInfo"]
