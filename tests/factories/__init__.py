"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .user import UserFactory, AdminUserFactory, InactiveUserFactory
from .inventory import (
    PartFactory,
    TonerFactory,
    DeviceFactory,
    ClaimDetailsFactory,
    RequestDetailsFactory,
)
from .notification import NotificationFactory, ReadNotificationFactory

__all__ = [
    "UserFactory",
    "AdminUserFactory",
    "InactiveUserFactory",
    "PartFactory",
    "TonerFactory",
    "DeviceFactory",
    "ClaimDetailsFactory",
    "RequestDetailsFactory",
    "NotificationFactory",
    "ReadNotificationFactory",
]
