import uuid
from datetime import datetime

from sqlalchemy import (
    JSON, Column, Integer, String, Text, Boolean, Float,
    DateTime, ForeignKey, ForeignKeyConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------
# Users & chats
# ---------------------------

class User(Base):
    """Application user. Login happens through Google OAuth."""
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(64), unique=True, nullable=False)
    password = Column(String(64), nullable=True)
    first_name = Column(String(64), nullable=True)
    last_name = Column(String(64), nullable=True)
    usage_type = Column(String(16), nullable=True)  # personal | business | both
    gmail_connected = Column(Boolean, default=False, nullable=False)
    referral_source = Column(Text, nullable=True)
    onboarding_completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    stripe_customer_id = Column(Text, nullable=True)

    __table_args__ = (
        Index('ix_users_email', 'email'),
    )


class Chat(Base):
    __tablename__ = 'chats'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    title = Column(Text, nullable=False)
    visibility = Column(String(16), default='private', nullable=False)  # public | private

    participants = relationship("ChatParticipant", back_populates="chat", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="chat", cascade="all, delete-orphan")


class ChatParticipant(Base):
    __tablename__ = 'chat_participants'

    chat_id = Column(String(36), ForeignKey('chats.id', ondelete='CASCADE'), primary_key=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    role = Column(String(16), default='viewer', nullable=False)  # owner | editor | viewer
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="participants")
    user = relationship("User")


class Message(Base):
    __tablename__ = 'messages'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    chat_id = Column(String(36), ForeignKey('chats.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(32), nullable=False)
    parts = Column(JSON, nullable=False, default=list)
    attachments = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (
        Index('ix_messages_chat_created', 'chat_id', 'created_at'),
    )


class Vote(Base):
    __tablename__ = 'votes'

    chat_id = Column(String(36), ForeignKey('chats.id', ondelete='CASCADE'), primary_key=True)
    message_id = Column(String(36), ForeignKey('messages.id', ondelete='CASCADE'), primary_key=True)
    is_upvoted = Column(Boolean, nullable=False)


class ChatSummary(Base):
    __tablename__ = 'chat_summaries'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    chat_id = Column(String(36), ForeignKey('chats.id', ondelete='CASCADE'), nullable=False)
    summary = Column(Text, nullable=False)
    last_message_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# ---------------------------
# Documents
# ---------------------------

class Document(Base):
    """A document version. Every save with the same id adds a new row."""
    __tablename__ = 'documents'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    created_at = Column(DateTime, primary_key=True, default=datetime.utcnow)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    kind = Column(String(16), default='text', nullable=False)  # text | code | image | sheet
    chat_id = Column(String(36), ForeignKey('chats.id', ondelete='SET NULL'), nullable=True)


class DocumentAccess(Base):
    __tablename__ = 'document_access'

    document_id = Column(String(36), primary_key=True)
    document_created_at = Column(DateTime, primary_key=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    role = Column(String(16), default='viewer', nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ['document_id', 'document_created_at'],
            ['documents.id', 'documents.created_at'],
            ondelete='CASCADE',
        ),
    )


class Suggestion(Base):
    __tablename__ = 'suggestions'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    document_id = Column(String(36), nullable=False)
    document_created_at = Column(DateTime, nullable=False)
    original_text = Column(Text, nullable=False)
    suggested_text = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    is_resolved = Column(Boolean, default=False, nullable=False)
    user_id = Column(String(36), ForeignKey('users.id'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ['document_id', 'document_created_at'],
            ['documents.id', 'documents.created_at'],
        ),
    )


# ---------------------------
# Threads (external conversations)
# ---------------------------

class ExternalParty(Base):
    __tablename__ = 'external_parties'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    type = Column(String(32), nullable=True)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    website = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Thread(Base):
    __tablename__ = 'threads'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    chat_id = Column(String(36), ForeignKey('chats.id', ondelete='CASCADE'), nullable=False)
    external_party_id = Column(String(36), ForeignKey('external_parties.id'), nullable=False)
    name = Column(String(128), nullable=False)
    external_system_id = Column(Text, nullable=True)
    status = Column(String(32), default='awaiting_reply', nullable=False)  # awaiting_reply | replied | closed
    last_message_preview = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('ix_threads_chat_id', 'chat_id'),
        Index('ix_threads_external_system_id', 'external_system_id'),
    )


class ThreadMessage(Base):
    __tablename__ = 'thread_messages'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    thread_id = Column(String(36), ForeignKey('threads.id', ondelete='CASCADE'), nullable=False)
    external_message_id = Column(Text, nullable=True)
    role = Column(String(16), nullable=False)  # user | ai | external
    subject = Column(Text, nullable=True)
    content = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('thread_id', 'external_message_id', name='uq_thread_external_message'),
    )


# ---------------------------
# OAuth credentials & Gmail
# ---------------------------

class UserOAuthCredentials(Base):
    __tablename__ = 'user_oauth_credentials'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    provider_name = Column(String(32), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    scopes = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'provider_name', name='uq_user_provider'),
    )


class GmailWatch(Base):
    __tablename__ = 'gmail_watches'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    history_id = Column(Text, nullable=False)
    topic_name = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    labels = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ---------------------------
# Stripe
# ---------------------------

class StripeProduct(Base):
    __tablename__ = 'stripe_products'

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_product_id = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    product_metadata = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    prices = relationship("StripePrice", back_populates="product")


class StripePrice(Base):
    __tablename__ = 'stripe_prices'

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_price_id = Column(Text, unique=True, nullable=False)
    product_id = Column(Integer, ForeignKey('stripe_products.id'), nullable=False)
    type = Column(String(16), nullable=False)  # one_time | recurring
    currency = Column(String(8), default='usd', nullable=False)
    unit_amount = Column(Integer, nullable=False)
    recurring = Column(JSON, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    price_metadata = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("StripeProduct", back_populates="prices")


class StripeCustomer(Base):
    __tablename__ = 'stripe_customers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    stripe_customer_id = Column(Text, unique=True, nullable=False)
    email = Column(Text, nullable=True)
    name = Column(Text, nullable=True)
    customer_metadata = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StripeSubscription(Base):
    __tablename__ = 'stripe_subscriptions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    stripe_subscription_id = Column(Text, unique=True, nullable=False)
    stripe_price_id = Column(Text, nullable=False)
    status = Column(String(32), nullable=False)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class StripePayment(Base):
    __tablename__ = 'stripe_payments'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    stripe_payment_intent_id = Column(Text, unique=True, nullable=False)
    stripe_price_id = Column(Text, nullable=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String(8), default='usd', nullable=False)
    status = Column(String(32), nullable=False)
    payment_method = Column(Text, nullable=True)
    payment_metadata = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ---------------------------
# Memory
# ---------------------------

class Resource(Base):
    __tablename__ = 'resources'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Embedding(Base):
    __tablename__ = 'embeddings'

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    resource_id = Column(String(36), ForeignKey('resources.id', ondelete='CASCADE'), nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(JSON, nullable=False)

    __table_args__ = (
        Index('ix_embeddings_user_id', 'user_id'),
    )
