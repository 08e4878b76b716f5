"""
Pydantic schemas for API validation.
"""
from app.schemas.user import (
    UserBase, UserCreate, UserUpdate, OnboardingRequest, User, UserProfile, UserCount,
    TokenData, Token, OAuthProvider, OAuthProvidersResponse, OAuthCredentials,
    GmailWatch, GmailStatus, GmailDisconnectResponse,
)
from app.schemas.chat import (
    MessageRole, Chat, ChatParticipant, ChatListResponse, VisibilityUpdate,
    MessagePart, Message, ChatMessageIn, ChatRequest, Vote, VoteRequest, ChatSummary,
)
from app.schemas.document import (
    ARTIFACT_KINDS, Document, DocumentSave, DocumentAccess, Suggestion, SuggestionDraft,
)
from app.schemas.thread import ExternalParty, Thread, ThreadMessage
from app.schemas.billing import (
    Price, Product, ProductWithPrices, ProductsResponse, Customer, Payment,
    Subscription, CheckoutRequest, PortalRequest, UrlResponse, PaymentStatus,
)
from app.schemas.memory import Resource, RelevantContent

__all__ = [
    # Users
    "UserBase", "UserCreate", "UserUpdate", "OnboardingRequest", "User", "UserProfile",
    "UserCount", "TokenData", "Token", "OAuthProvider", "OAuthProvidersResponse",
    "OAuthCredentials", "GmailWatch", "GmailStatus", "GmailDisconnectResponse",
    # Chats
    "MessageRole", "Chat", "ChatParticipant", "ChatListResponse", "VisibilityUpdate",
    "MessagePart", "Message", "ChatMessageIn", "ChatRequest", "Vote", "VoteRequest",
    "ChatSummary",
    # Documents
    "ARTIFACT_KINDS", "Document", "DocumentSave", "DocumentAccess", "Suggestion",
    "SuggestionDraft",
    # Threads
    "ExternalParty", "Thread", "ThreadMessage",
    # Billing
    "Price", "Product", "ProductWithPrices", "ProductsResponse", "Customer", "Payment",
    "Subscription", "CheckoutRequest", "PortalRequest", "UrlResponse", "PaymentStatus",
    # Memory
    "Resource", "RelevantContent",
]
