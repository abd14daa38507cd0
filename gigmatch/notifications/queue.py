"""Queueing for notifications raised by collaborators outside the sweep.

Messaging and contact sharing live in other services; they call into this
queue so their notifications go through the same dispatcher.
"""

import logging
from datetime import datetime
from typing import Optional

from gigmatch.domain.models import Notification, NotificationKind
from gigmatch.persistence import Database, NotificationRepository, new_id
from gigmatch.utils.timestamps import utc_now

from .payloads import NotificationContent, contact_shared_content, message_received_content

logger = logging.getLogger(__name__)


class NotificationQueue:
    def __init__(self, database: Database):
        self.database = database

    def enqueue(
        self,
        recipient_id: str,
        kind: NotificationKind,
        content: NotificationContent,
        listing_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """Store one pending notification.

        Raises:
            StoreUnavailable: If database error occurs
        """
        notification = Notification(
            id=new_id(),
            recipient_id=recipient_id,
            kind=kind,
            title=content.title,
            body=content.body,
            metadata=content.metadata,
            listing_id=listing_id,
            created_at=created_at or utc_now(),
        )
        with self.database.session() as session:
            stored = NotificationRepository(session).add(notification)

        logger.debug(f"Queued {kind.value} notification {stored.id} for {recipient_id}")
        return stored

    def enqueue_message_received(
        self,
        recipient_id: str,
        conversation_id: str,
        sender_id: str,
        message_id: str,
        content: str,
    ) -> Notification:
        return self.enqueue(
            recipient_id,
            NotificationKind.MESSAGE_RECEIVED,
            message_received_content(conversation_id, sender_id, message_id, content),
        )

    def enqueue_contact_shared(
        self,
        recipient_id: str,
        sharer_id: str,
        share_id: str,
        sharer_name: Optional[str] = None,
    ) -> Notification:
        return self.enqueue(
            recipient_id,
            NotificationKind.CONTACT_SHARED,
            contact_shared_content(sharer_id, share_id, sharer_name),
        )
