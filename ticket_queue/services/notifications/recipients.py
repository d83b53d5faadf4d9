"""
Notification Recipients

Establishment email addresses and admin WhatsApp numbers that receive
new-order notifications. Persisted as a small JSON document next to the
queue, seeded from settings the first time it is read.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import Field

from ticket_queue.core.exceptions import QueuePersistenceError
from ticket_queue.models import CamelModel
from ticket_queue.storage import StoreLock, atomic_write_text

logger = logging.getLogger(__name__)


class WhatsAppRecipient(CamelModel):
    phone_number: str
    name: Optional[str] = None


class Recipients(CamelModel):
    emails: list[str] = Field(default_factory=list)
    whatsapp_admins: list[WhatsAppRecipient] = Field(default_factory=list)


class RecipientStore:
    """Read-modify-write access to the recipients document."""

    def __init__(
        self,
        path: Path,
        seed_emails: Optional[list[str]] = None,
        seed_whatsapp: Optional[list[str]] = None,
        lock_timeout: float = 10.0,
    ):
        self.path = Path(path)
        self._seed = Recipients(
            emails=list(dict.fromkeys(e.strip().lower() for e in seed_emails or [])),
            whatsapp_admins=[WhatsAppRecipient(phone_number=p) for p in seed_whatsapp or []],
        )
        self._lock = StoreLock(self.path.with_name(self.path.name + ".lock"), lock_timeout)

    def load(self) -> Recipients:
        if not self.path.exists():
            return self._seed.model_copy(deep=True)
        try:
            return Recipients.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable recipients document {self.path}: {e}. Using seed recipients")
            return self._seed.model_copy(deep=True)

    def _save(self, recipients: Recipients) -> None:
        try:
            atomic_write_text(self.path, json.dumps(recipients.to_wire(), indent=2))
        except OSError as e:
            raise QueuePersistenceError(f"Could not write recipients document: {e}") from e

    # =========================================================================
    # EMAIL
    # =========================================================================

    def get_emails(self) -> list[str]:
        return self.load().emails

    def add_email(self, email: str) -> bool:
        """Add an email. Returns False if it is already registered."""
        email = email.strip().lower()
        with self._lock.hold():
            recipients = self.load()
            if email in recipients.emails:
                return False
            recipients.emails.append(email)
            self._save(recipients)
        logger.info(f"Establishment email added: {email}")
        return True

    def remove_email(self, email: str) -> bool:
        """Remove an email. Returns False if it was not registered."""
        email = email.strip().lower()
        with self._lock.hold():
            recipients = self.load()
            if email not in recipients.emails:
                return False
            recipients.emails.remove(email)
            self._save(recipients)
        logger.info(f"Establishment email removed: {email}")
        return True

    # =========================================================================
    # WHATSAPP
    # =========================================================================

    def get_whatsapp_admins(self) -> list[WhatsAppRecipient]:
        return self.load().whatsapp_admins

    def add_whatsapp_admin(self, phone_number: str, name: Optional[str] = None) -> bool:
        """Add an admin number, or rename it if present. Returns True when added."""
        phone_number = phone_number.strip()
        with self._lock.hold():
            recipients = self.load()
            for admin in recipients.whatsapp_admins:
                if admin.phone_number == phone_number:
                    admin.name = name or admin.name
                    self._save(recipients)
                    return False
            recipients.whatsapp_admins.append(WhatsAppRecipient(phone_number=phone_number, name=name))
            self._save(recipients)
        logger.info(f"Admin WhatsApp recipient added: {phone_number}")
        return True
