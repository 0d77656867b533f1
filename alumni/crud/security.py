"""
Security event CRUD
"""
from alumni.models.security import SecurityEvent
from .base import CRUDBase


class CRUDSecurityEvent(CRUDBase[SecurityEvent]):
    pass


security_event_crud = CRUDSecurityEvent(SecurityEvent)
