from atelier.crm.api import router
from atelier.crm.models import Contact
from atelier.crm.schemas import ContactCreate, ContactRead, ContactStats, ContactUpdate
from atelier.crm.service import ContactService, contact_service

__all__ = [
    "router",
    "Contact",
    "ContactCreate",
    "ContactUpdate",
    "ContactRead",
    "ContactStats",
    "ContactService",
    "contact_service",
]
