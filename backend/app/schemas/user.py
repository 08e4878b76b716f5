"""
Pydantic schemas for users - API validation and serialization.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

UsageType = Literal["personal", "business", "both"]


class UserBase(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserCreate(UserBase):
    """Created on first Google login."""
    pass


class UserUpdate(BaseModel):
    """Fields a user may change on their own record. Unset fields are ignored."""
    id: str
    first_name: Optional[str] = Field(None, min_length=1, max_length=64)
    last_name: Optional[str] = Field(None, min_length=1, max_length=64)
    usage_type: Optional[UsageType] = None
    referral_source: Optional[str] = None
    gmail_connected: Optional[bool] = None


class OnboardingRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=64)
    last_name: str = Field(..., min_length=1, max_length=64)
    usage_type: UsageType
    referral_source: Optional[str] = None


class User(UserBase):
    """Full user schema."""
    id: str
    usage_type: Optional[str] = None
    gmail_connected: bool = False
    referral_source: Optional[str] = None
    onboarding_completed_at: Optional[datetime] = None
    created_at: datetime
    stripe_customer_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.email.split("@")[0]


class UserProfile(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    onboarding_completed_at: Optional[datetime] = None


class UserCount(BaseModel):
    count: int


class TokenData(BaseModel):
    """Schema for JWT token payload data."""
    sub: str  # User ID
    exp: datetime
    name: str
    email: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: int  # Unix timestamp
    user: UserBase


class OAuthProvider(BaseModel):
    name: str
    display_name: str
    icon: Optional[str] = None


class OAuthProvidersResponse(BaseModel):
    providers: List[OAuthProvider]


class OAuthCredentials(BaseModel):
    """Stored third-party token pair (Gmail)."""
    id: str
    user_id: str
    provider_name: str
    access_token: str
    refresh_token: Optional[str] = None
    scopes: List[str] = []
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class GmailWatch(BaseModel):
    id: str
    user_id: str
    history_id: str
    topic_name: str
    expires_at: datetime
    active: bool
    labels: Optional[List[str]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GmailStatus(BaseModel):
    connected: bool


class GmailDisconnectResponse(BaseModel):
    success: bool
    redirect_url: str
    details: Dict[str, Any] = {}
