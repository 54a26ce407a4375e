"""
Services package for the temp voice bot.

Services hold the business logic: channel lifecycle, ownership, the
permission operation set, admin overrides and analytics. They are built and
wired together by the ServiceContainer.
"""

from .admin_service import AdminService
from .analytics_service import AnalyticsService
from .base import BaseService
from .channel_operations import ChannelOperations
from .ownership_store import OwnershipStore
from .service_container import ServiceContainer
from .voice_service import VoiceService

__all__ = [
    "AdminService",
    "AnalyticsService",
    "BaseService",
    "ChannelOperations",
    "OwnershipStore",
    "ServiceContainer",
    "VoiceService",
]
