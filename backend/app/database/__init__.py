"""
Database access: engine/session management and per-domain repositories.
"""
from app.database.manager import DatabaseManager, db_manager, init_db
from app.database.users import UserRepository, user_repository
from app.database.chats import ChatRepository, chat_repository
from app.database.documents import DocumentRepository, document_repository
from app.database.threads import ThreadRepository, thread_repository
from app.database.credentials import CredentialRepository, credential_repository
from app.database.billing import BillingRepository, billing_repository
from app.database.memory import MemoryRepository, memory_repository

__all__ = [
    "DatabaseManager", "db_manager", "init_db",
    "UserRepository", "user_repository",
    "ChatRepository", "chat_repository",
    "DocumentRepository", "document_repository",
    "ThreadRepository", "thread_repository",
    "CredentialRepository", "credential_repository",
    "BillingRepository", "billing_repository",
    "MemoryRepository", "memory_repository",
]
