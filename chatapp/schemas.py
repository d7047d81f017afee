"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming JSON bodies
- Response models for API responses

Request fields are optional on purpose: a missing value is reported as
``{success: false, message}`` by the services rather than as HTTP 422.
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class LoginRequest(BaseModel):
    """Login by username or email."""
    username: Optional[str] = Field(None, description="Username or email")
    password: Optional[str] = None


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LogoutRequest(BaseModel):
    userId: Optional[str] = None


class StatusRequest(BaseModel):
    """Heartbeat: status true marks the user online, false offline."""
    userId: Optional[str] = None
    status: Optional[bool] = None


class SendMessageRequest(BaseModel):
    """
    A private message from userId/username to receiverId/receiverName.
    """
    userId: Optional[str] = None
    username: Optional[str] = None
    receiverId: Optional[str] = None
    receiverName: Optional[str] = None
    message: Optional[str] = Field(None, description="Message body")


class UpdateProfileRequest(BaseModel):
    userId: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    userId: Optional[str] = None
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None


# =============================================================================
# Pydantic Response Models
# =============================================================================

class UserResponse(BaseModel):
    """A user without the password digest."""
    id: str
    username: str
    email: str
    profilePicture: Optional[str] = None
    createdAt: str


class UserStatusResponse(UserResponse):
    isOnline: bool = False


class MessageResponse(BaseModel):
    id: str
    senderId: str
    senderName: str
    receiverId: str
    receiverName: str
    message: str
    timestamp: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class UserEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: UserResponse


class MessageEnvelope(BaseModel):
    success: bool = True
    message: MessageResponse


class ProfilePictureResponse(BaseModel):
    success: bool = True
    profilePicture: str


class ErrorResponse(BaseModel):
    """Every failure is reported with this body and HTTP 200."""
    success: bool = False
    message: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
