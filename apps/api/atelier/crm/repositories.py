from __future__ import annotations

from atelier.platform.security.repository import BaseRepository


class ContactRepository(BaseRepository):
    resource = "crm.contact"
