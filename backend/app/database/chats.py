from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from app.core.exceptions import NotFoundError
from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import (
    Chat as SQLChat,
    ChatParticipant as SQLChatParticipant,
    ChatSummary as SQLChatSummary,
    Message as SQLMessage,
    Vote as SQLVote,
)
from app.schemas.chat import Chat, ChatParticipant, ChatListResponse, ChatSummary, Message, Vote

logger = logging.getLogger(__name__)

# Characters of new message parts that trigger a fresh summary
SUMMARY_THRESHOLD = 5000


class ChatRepository:
    """Chats, participants, messages, votes and summaries."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    # ---------------------------
    # Chats
    # ---------------------------

    def save_chat(self, chat_id: str, user_id: str, title: str, visibility: str = "private") -> Chat:
        """Create a chat and register its creator as owner."""
        try:
            with self.db.get_session() as session:
                chat = SQLChat(id=chat_id, title=title, visibility=visibility, created_at=datetime.utcnow())
                session.add(chat)
                session.add(SQLChatParticipant(chat_id=chat_id, user_id=user_id, role="owner"))
                session.flush()
                logger.info(f"Created chat {chat_id} for user {user_id}")
                return Chat.model_validate(chat)
        except Exception as e:
            logger.error(f"Failed to save chat in database: {e}")
            raise

    def get_chat_by_id(self, chat_id: str) -> Optional[Chat]:
        try:
            with self.db.get_session() as session:
                chat = session.get(SQLChat, chat_id)
                return Chat.model_validate(chat) if chat else None
        except Exception as e:
            logger.error(f"Failed to get chat {chat_id}: {e}")
            raise

    def delete_chat_by_id(self, chat_id: str) -> None:
        try:
            with self.db.get_session() as session:
                session.query(SQLVote).filter_by(chat_id=chat_id).delete()
                session.query(SQLMessage).filter_by(chat_id=chat_id).delete()
                session.query(SQLChatSummary).filter_by(chat_id=chat_id).delete()
                session.query(SQLChatParticipant).filter_by(chat_id=chat_id).delete()
                session.query(SQLChat).filter_by(id=chat_id).delete()
                logger.info(f"Deleted chat {chat_id}")
        except Exception as e:
            logger.error(f"Failed to delete chat {chat_id}: {e}")
            raise

    def get_chats_by_user_id(
        self,
        user_id: str,
        limit: int = 50,
        starting_after: Optional[str] = None,
        ending_before: Optional[str] = None,
    ) -> ChatListResponse:
        """
        Page through a user's chats, newest first.

        ``starting_after`` returns chats newer than the cursor chat,
        ``ending_before`` returns chats older than it. One extra row is
        fetched to know whether more pages exist.
        """
        try:
            with self.db.get_session() as session:
                query = (
                    session.query(SQLChat)
                    .join(SQLChatParticipant, SQLChatParticipant.chat_id == SQLChat.id)
                    .filter(SQLChatParticipant.user_id == user_id)
                )

                cursor_id = starting_after or ending_before
                if cursor_id:
                    cursor_chat = session.get(SQLChat, cursor_id)
                    if not cursor_chat:
                        raise NotFoundError(f"Chat with id {cursor_id} not found")
                    if starting_after:
                        query = query.filter(SQLChat.created_at > cursor_chat.created_at)
                    else:
                        query = query.filter(SQLChat.created_at < cursor_chat.created_at)

                rows = query.order_by(SQLChat.created_at.desc()).limit(limit + 1).all()
                has_more = len(rows) > limit
                chats = [Chat.model_validate(c) for c in rows[:limit]]
                return ChatListResponse(chats=chats, has_more=has_more)
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"Failed to get chats by user {user_id}: {e}")
            raise

    def update_chat_visibility(self, chat_id: str, visibility: str) -> None:
        try:
            with self.db.get_session() as session:
                updated = session.query(SQLChat).filter_by(id=chat_id).update({"visibility": visibility})
                if not updated:
                    raise NotFoundError("Chat not found")
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"Failed to update visibility for chat {chat_id}: {e}")
            raise

    # ---------------------------
    # Participants
    # ---------------------------

    def add_chat_participant(self, chat_id: str, user_id: str, role: str = "viewer") -> ChatParticipant:
        try:
            with self.db.get_session() as session:
                participant = session.get(SQLChatParticipant, (chat_id, user_id))
                if participant:
                    participant.role = role
                else:
                    participant = SQLChatParticipant(chat_id=chat_id, user_id=user_id, role=role)
                    session.add(participant)
                session.flush()
                session.refresh(participant)
                return ChatParticipant.model_validate(participant)
        except Exception as e:
            logger.error(f"Failed to add participant {user_id} to chat {chat_id}: {e}")
            raise

    def get_chat_participants(self, chat_id: str) -> List[ChatParticipant]:
        try:
            with self.db.get_session() as session:
                rows = session.query(SQLChatParticipant).filter_by(chat_id=chat_id).all()
                return [ChatParticipant.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get participants of chat {chat_id}: {e}")
            raise

    def remove_chat_participant(self, chat_id: str, user_id: str) -> bool:
        try:
            with self.db.get_session() as session:
                return session.query(SQLChatParticipant).filter_by(chat_id=chat_id, user_id=user_id).delete() > 0
        except Exception as e:
            logger.error(f"Failed to remove participant {user_id} from chat {chat_id}: {e}")
            raise

    def get_participant_role(self, chat_id: str, user_id: str) -> Optional[str]:
        try:
            with self.db.get_session() as session:
                participant = session.get(SQLChatParticipant, (chat_id, user_id))
                return participant.role if participant else None
        except Exception as e:
            logger.error(f"Failed to check participant {user_id} in chat {chat_id}: {e}")
            raise

    def is_chat_participant(self, chat_id: str, user_id: str) -> bool:
        return self.get_participant_role(chat_id, user_id) is not None

    def is_chat_owner(self, chat_id: str, user_id: str) -> bool:
        return self.get_participant_role(chat_id, user_id) == "owner"

    # ---------------------------
    # Messages
    # ---------------------------

    def save_messages(self, messages: List[Dict[str, Any]]) -> None:
        try:
            with self.db.get_session() as session:
                for message in messages:
                    session.merge(SQLMessage(
                        id=message["id"],
                        chat_id=message["chat_id"],
                        role=message["role"],
                        parts=message.get("parts") or [],
                        attachments=message.get("attachments") or [],
                        created_at=message.get("created_at") or datetime.utcnow(),
                    ))
        except Exception as e:
            logger.error(f"Failed to save messages in database: {e}")
            raise

    def get_messages_by_chat_id(self, chat_id: str) -> List[Message]:
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLMessage)
                    .filter_by(chat_id=chat_id)
                    .order_by(SQLMessage.created_at.asc())
                    .all()
                )
                return [Message.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get messages by chat id {chat_id}: {e}")
            raise

    def get_message_by_id(self, message_id: str) -> Optional[Message]:
        try:
            with self.db.get_session() as session:
                row = session.get(SQLMessage, message_id)
                return Message.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get message {message_id}: {e}")
            raise

    def delete_messages_by_chat_id_after_timestamp(self, chat_id: str, timestamp: datetime) -> int:
        """Delete messages created at or after ``timestamp`` together with their votes."""
        try:
            with self.db.get_session() as session:
                message_ids = [
                    row.id for row in session.query(SQLMessage.id)
                    .filter(SQLMessage.chat_id == chat_id, SQLMessage.created_at >= timestamp)
                    .all()
                ]
                if not message_ids:
                    return 0
                session.query(SQLVote).filter(
                    SQLVote.chat_id == chat_id, SQLVote.message_id.in_(message_ids)
                ).delete(synchronize_session=False)
                return session.query(SQLMessage).filter(
                    SQLMessage.chat_id == chat_id, SQLMessage.id.in_(message_ids)
                ).delete(synchronize_session=False)
        except Exception as e:
            logger.error(f"Failed to delete messages after {timestamp} in chat {chat_id}: {e}")
            raise

    # ---------------------------
    # Votes
    # ---------------------------

    def vote_message(self, chat_id: str, message_id: str, vote_type: str) -> Vote:
        try:
            with self.db.get_session() as session:
                vote = session.get(SQLVote, (chat_id, message_id))
                if vote:
                    vote.is_upvoted = vote_type == "up"
                else:
                    vote = SQLVote(chat_id=chat_id, message_id=message_id, is_upvoted=vote_type == "up")
                    session.add(vote)
                session.flush()
                return Vote.model_validate(vote)
        except Exception as e:
            logger.error(f"Failed to vote message {message_id}: {e}")
            raise

    def get_votes_by_chat_id(self, chat_id: str) -> List[Vote]:
        try:
            with self.db.get_session() as session:
                rows = session.query(SQLVote).filter_by(chat_id=chat_id).all()
                return [Vote.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get votes for chat {chat_id}: {e}")
            raise

    # ---------------------------
    # Summaries
    # ---------------------------

    def get_latest_chat_summary(self, chat_id: str) -> Optional[ChatSummary]:
        try:
            with self.db.get_session() as session:
                row = (
                    session.query(SQLChatSummary)
                    .filter_by(chat_id=chat_id)
                    .order_by(SQLChatSummary.created_at.desc())
                    .first()
                )
                return ChatSummary.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to get latest summary for chat {chat_id}: {e}")
            raise

    def save_chat_summary(self, chat_id: str, summary: str, last_message_id: Optional[str]) -> ChatSummary:
        try:
            with self.db.get_session() as session:
                row = SQLChatSummary(chat_id=chat_id, summary=summary, last_message_id=last_message_id)
                session.add(row)
                session.flush()
                session.refresh(row)
                return ChatSummary.model_validate(row)
        except Exception as e:
            logger.error(f"Failed to save summary for chat {chat_id}: {e}")
            raise

    def should_create_new_summary(self, chat_id: str) -> bool:
        """True when no summary exists or enough new content piled up since the last one."""
        latest = self.get_latest_chat_summary(chat_id)
        if not latest:
            return True

        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLMessage.parts)
                    .filter(SQLMessage.chat_id == chat_id, SQLMessage.created_at > latest.created_at)
                    .all()
                )
                new_length = sum(len(json.dumps(row.parts)) for row in rows)
                return new_length >= SUMMARY_THRESHOLD
        except Exception as e:
            logger.error(f"Failed to check summary threshold for chat {chat_id}: {e}")
            raise


chat_repository = ChatRepository(db_manager)
