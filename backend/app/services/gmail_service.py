import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import ConfigurationError, IntegrationError
from app.database import credential_repository, thread_repository, user_repository
from app.services.gmail_client import GMAIL_PROVIDER, GmailClient
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

WATCH_EXPIRATION_BUFFER = timedelta(hours=24)
HISTORY_BATCH_SIZE = 10


class GmailService:
    """Email threads with external parties, backed by the user's Gmail account."""

    async def create_client_for_user(self, user_id: str) -> Optional[GmailClient]:
        credentials = await run_sync(credential_repository.get_oauth_credentials, user_id, GMAIL_PROVIDER)
        if not credentials:
            return None
        return GmailClient(user_id, credentials)

    async def poll_for_new_messages(self, user_id: str, thread_id: str) -> List[Dict[str, Any]]:
        thread = await run_sync(thread_repository.get_thread_by_id, thread_id)
        if not thread or not thread.external_system_id:
            return []

        client = await self.create_client_for_user(user_id)
        if not client:
            return []

        existing = await run_sync(thread_repository.get_thread_messages_by_thread_id, thread_id)
        last_message_id = existing[-1].external_message_id if existing else None
        return await client.check_for_new_messages(thread.external_system_id, last_message_id)

    async def process_new_messages(self, user_id: str, thread_id: str) -> bool:
        """Store inbound replies of a thread and flag it as awaiting reply."""
        new_messages = await self.poll_for_new_messages(user_id, thread_id)
        if not new_messages:
            return False

        user = await run_sync(user_repository.get_user_by_id, user_id)
        user_email = user.email.lower() if user else ""

        for message in new_messages:
            sender = message["from"]
            if user_email and user_email in sender.lower():
                continue
            if message["id"] and await run_sync(
                thread_repository.get_thread_message_by_external_id, message["id"], thread_id=thread_id
            ):
                continue

            await run_sync(
                thread_repository.save_thread_message,
                thread_id,
                "external",
                {"text": message["body"]},
                message["subject"],
                message["id"],
            )
            await run_sync(
                thread_repository.update_thread_status,
                thread_id,
                "awaiting_reply",
                f"New message from {sender.split('<')[0].strip()}",
            )
        return True

    async def initiate_thread(
        self,
        user_id: str,
        recipient_email: str,
        subject: str,
        initial_message: str,
        chat_id: str,
    ) -> str:
        """Send the first email of a thread and record the thread. Returns the thread id."""
        client = await self.create_client_for_user(user_id)
        if not client:
            raise IntegrationError("Gmail", "Gmail is not connected for this user")

        party = await run_sync(thread_repository.get_external_party_by_email, recipient_email)
        if not party:
            party = await run_sync(
                thread_repository.save_external_party,
                recipient_email.split("@")[0],
                recipient_email,
                None,
                "business",
            )

        sent = await client.send_message(to=recipient_email, subject=subject, body=initial_message)
        if not sent.get("threadId"):
            raise IntegrationError("Gmail", "Failed to send message: No thread ID returned")

        thread = await run_sync(
            thread_repository.save_thread,
            chat_id,
            party.id,
            subject,
            sent["threadId"],
            "awaiting_reply",
            "Initial message sent",
        )
        await run_sync(
            thread_repository.save_thread_message,
            thread.id,
            "user",
            {"text": initial_message},
            subject,
            sent.get("id"),
        )
        logger.info(f"Started email thread {thread.id} with {recipient_email}")
        return thread.id

    async def setup_gmail_watch(self, user_id: str) -> bool:
        """Register push notifications unless a watch with more than a day left exists."""
        client = await self.create_client_for_user(user_id)
        if not client:
            return False

        existing = await run_sync(credential_repository.get_latest_gmail_watch, user_id)
        if existing and existing.active and existing.expires_at - datetime.utcnow() > WATCH_EXPIRATION_BUFFER:
            return True

        topic_name = settings.GMAIL_PUBSUB_TOPIC
        if not topic_name:
            raise ConfigurationError("GMAIL_PUBSUB_TOPIC")

        watch = await client.setup_watch(topic_name)
        await run_sync(
            credential_repository.save_gmail_watch,
            user_id,
            watch["history_id"],
            topic_name,
            watch["expires_at"],
        )
        logger.info(f"Gmail watch registered for user {user_id} until {watch['expires_at']}")
        return True

    async def stop_gmail_watch(self, user_id: str) -> bool:
        client = await self.create_client_for_user(user_id)
        if not client:
            return False
        await client.stop_watch()
        return True

    async def process_history_update(self, user_id: str, history_id: str) -> bool:
        watch = await run_sync(credential_repository.get_latest_gmail_watch, user_id)
        if not watch or not watch.history_id:
            return False

        client = await self.create_client_for_user(user_id)
        if not client:
            return False

        history = await client.get_history(watch.history_id)
        for start in range(0, len(history), HISTORY_BATCH_SIZE):
            batch = history[start:start + HISTORY_BATCH_SIZE]
            added = self._history_thread_ids(batch, "messagesAdded")
            deleted = self._history_thread_ids(batch, "messagesDeleted")
            await asyncio.gather(*(self._sync_external_thread(user_id, t) for t in added))
            await asyncio.gather(*(self._mark_external_thread_deleted(t) for t in deleted))

        await run_sync(credential_repository.update_gmail_watch_status, watch.id, None, history_id)
        return True

    @staticmethod
    def _history_thread_ids(records: List[Dict[str, Any]], key: str) -> List[str]:
        """Distinct Gmail thread ids touched by ``key`` events, in first-seen order."""
        thread_ids: List[str] = []
        for record in records:
            for event in record.get(key, []):
                external_thread_id = (event.get("message") or {}).get("threadId")
                if external_thread_id and external_thread_id not in thread_ids:
                    thread_ids.append(external_thread_id)
        return thread_ids

    async def _sync_external_thread(self, user_id: str, external_thread_id: str) -> None:
        thread = await run_sync(thread_repository.get_thread_by_external_system_id, external_thread_id)
        if thread:
            await self.process_new_messages(user_id, thread.id)

    async def _mark_external_thread_deleted(self, external_thread_id: str) -> None:
        thread = await run_sync(thread_repository.get_thread_by_external_system_id, external_thread_id)
        if thread:
            await run_sync(
                thread_repository.update_thread_status,
                thread.id,
                None,
                "Message was deleted in Gmail",
            )


gmail_service = GmailService()
