"""Authentication schemas."""
from pydantic import BaseModel, EmailStr, Field


class UserRegister(BaseModel):
    """User registration request."""

    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: EmailStr
    password: str = Field(..., min_length=8)


class UserLogin(BaseModel):
    """User login request."""

    email: str
    password: str


class AccountResponse(BaseModel):
    """Account info response."""

    id: str
    username: str
    email: str
    display_name: str
    bio: str
    show_email: bool
    created_at: str

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Login/refresh response; tokens travel only in cookies."""

    user_id: str
    username: str


class AccountHandle(BaseModel):
    """Non-sensitive handle of an account signed in on this device."""

    id: str
    username: str
    display_name: str
    active: bool = False


class SessionResponse(BaseModel):
    """One refresh session of the caller's account."""

    id: str
    created_at: str
    last_used_at: str
    expires_at: str | None = None
    revoked: bool
    revoked_at: str | None = None
    device_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    current: bool = False


class DeviceRevocationResponse(BaseModel):
    session_id: str
    revoked: bool


class DeviceRevokeResponse(BaseModel):
    device_id: str
    sessions: list[DeviceRevocationResponse]


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
