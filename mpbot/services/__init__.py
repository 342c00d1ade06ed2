# mpbot/services/__init__.py
from mpbot.services.licenses import LicenseService
from mpbot.services.targets import TargetService

__all__ = ["LicenseService", "TargetService"]
