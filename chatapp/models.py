"""
Record models persisted in the flat JSON stores.

This module contains the on-disk shapes of users.json and private_chats.json.
For request/response schemas, see schemas.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """
    A registered user as stored in users.json.

    Keys on disk: id, username, email, password, profilePicture, createdAt.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    email: str
    password_hash: str = Field(alias="password")
    profile_picture: Optional[str] = Field(default=None, alias="profilePicture")
    created_at: str = Field(alias="createdAt")  # ISO-8601 UTC string

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)

    def public(self) -> dict:
        """The record without its password digest."""
        return self.model_dump(by_alias=True, exclude={"password_hash"})


class MessageRecord(BaseModel):
    """
    A private message as stored under its conversation key.

    Keys on disk: id, senderId, senderName, receiverId, receiverName,
    message, timestamp.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender_id: str = Field(alias="senderId")
    sender_name: str = Field(alias="senderName")
    receiver_id: str = Field(alias="receiverId")
    receiver_name: str = Field(alias="receiverName")
    message: str
    timestamp: str  # ISO-8601 UTC string

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True)
