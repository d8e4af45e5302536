from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


class PaymentProvider(str, Enum):
    STRIPE = "stripe"
    DLOCAL = "dlocal"
    MANUAL = "manual"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class LinkType(str, Enum):
    SIGNUP = "signup"
    RECOVERY = "recovery"


# Authentication Models
class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(None, description="User email address")
    password: Optional[str] = Field(None, description="User password")
    full_name: Optional[str] = Field(None, alias="fullName", description="User full name")
    country: Optional[str] = Field(None, description="User country")
    redirect: Optional[str] = Field(None, description="Relative path to open after confirming the account")


class LoginRequest(BaseModel):
    email: str = Field(..., description="User email address")
    password: str = Field(..., description="User password")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., description="Refresh token issued at login")


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = Field(None, description="User email address")


class UpdatePasswordRequest(BaseModel):
    token_hash: str = Field(..., description="Recovery link token")
    password: str = Field(..., description="New password")


class AcceptInvitationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = Field(None, description="Invitation token")
    full_name: Optional[str] = Field(None, alias="fullName", description="User full name")
    password: Optional[str] = Field(None, description="User password")


class UpdateProfileRequest(BaseModel):
    full_name: str = Field(..., min_length=2, description="User display name")
    phone: Optional[str] = Field(None, max_length=50)
    country: Optional[str] = Field(None, max_length=100)


class CurrentUser(BaseModel):
    """Authenticated caller resolved from a bearer token"""

    id: str
    email: str
    role: Role = Role.STUDENT

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# Invitation Models
class InviteRequest(BaseModel):
    email: Optional[str] = Field(None, description="Email to invite")
    full_name: Optional[str] = Field(None, description="Optional name used in the invitation email")


# Community Models
class ForumPostCreate(BaseModel):
    title: str = Field(..., max_length=200)
    content: str = Field(..., max_length=20000)


class ForumReplyCreate(BaseModel):
    content: str = Field(..., max_length=10000)


class MessageCreate(BaseModel):
    message: str = Field(..., max_length=5000)


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    publish: bool = Field(True, description="Publish immediately")
    send_email: bool = Field(False, description="Broadcast to enrolled students")


class AnnouncementBroadcast(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)


# Webhook Models
class PurchaseWebhookPayload(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None
    purchase_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    payment_provider: Optional[str] = None
    timestamp: Optional[str] = None
    signature: Optional[str] = Field(None, description="Legacy body signature, prefer the header")


class AnnouncementUpdate(BaseModel):
    is_active: Optional[bool] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)


# Upload Models
class ResourceDeleteRequest(BaseModel):
    url: Optional[str] = Field(None, description="Stored resource URL to remove")
