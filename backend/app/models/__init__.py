"""
SQLAlchemy ORM models.
"""
from app.models.database_models import (
    Base,
    User,
    Chat,
    ChatParticipant,
    Message,
    Vote,
    ChatSummary,
    Document,
    DocumentAccess,
    Suggestion,
    ExternalParty,
    Thread,
    ThreadMessage,
    UserOAuthCredentials,
    GmailWatch,
    StripeProduct,
    StripePrice,
    StripeCustomer,
    StripeSubscription,
    StripePayment,
    Resource,
    Embedding,
)

__all__ = [
    "Base",
    "User",
    "Chat",
    "ChatParticipant",
    "Message",
    "Vote",
    "ChatSummary",
    "Document",
    "DocumentAccess",
    "Suggestion",
    "ExternalParty",
    "Thread",
    "ThreadMessage",
    "UserOAuthCredentials",
    "GmailWatch",
    "StripeProduct",
    "StripePrice",
    "StripeCustomer",
    "StripeSubscription",
    "StripePayment",
    "Resource",
    "Embedding",
]
