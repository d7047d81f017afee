"""
Account and messaging services.

Thin orchestration over the credential store, conversation store and
presence tracker. Routes call these; stores never see HTTP concerns.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import BinaryIO, List, Optional

from chatapp.config import Settings
from chatapp.conversations import ConversationStore
from chatapp.credentials import CredentialStore
from chatapp.errors import InvalidUpload, require_fields
from chatapp.presence import PresenceTracker

logger = logging.getLogger(__name__)

# Extension must be one of these, compared as given by the client
ALLOWED_IMAGE_PATTERN = re.compile(r"\.(jpg|jpeg|png|gif)\Z")
CHUNK_SIZE = 64 * 1024


class AccountService:
    """Register/login, profile updates, picture uploads and deletion."""

    def __init__(
        self,
        credentials: CredentialStore,
        presence: PresenceTracker,
        uploads_dir: Path,
        max_upload_bytes: int = 5 * 1024 * 1024,
    ):
        self.credentials = credentials
        self.presence = presence
        self.uploads_dir = Path(uploads_dir)
        self.max_upload_bytes = max_upload_bytes

    def login(self, username: Optional[str], password: Optional[str]) -> dict:
        require_fields("Username and password are required", username=username, password=password)
        return self.credentials.authenticate(username, password)

    def logout(self, user_id: Optional[str]) -> None:
        require_fields("User ID is required", user_id=user_id)
        self.presence.set_offline(user_id)

    def register(self, username: Optional[str], email: Optional[str], password: Optional[str]) -> dict:
        require_fields(username=username, email=email, password=password)
        return self.credentials.register(username, email, password)

    def list_users(self) -> List[dict]:
        return self.credentials.list_public()

    def update_profile(self, user_id: Optional[str], username: Optional[str], email: Optional[str]) -> dict:
        require_fields(user_id=user_id, username=username, email=email)
        return self.credentials.update_profile(user_id, username, email)

    def change_password(
        self,
        user_id: Optional[str],
        current_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        require_fields(user_id=user_id, current_password=current_password, new_password=new_password)
        self.credentials.change_password(user_id, current_password, new_password)

    def delete_account(self, user_id: Optional[str], password: Optional[str]) -> None:
        require_fields("Password is required", user_id=user_id, password=password)
        self.credentials.delete_account(user_id, password)

    def upload_profile_picture(
        self,
        user_id: Optional[str],
        filename: Optional[str],
        stream: Optional[BinaryIO],
    ) -> str:
        """
        Validate and store an uploaded image, then attach it to the user.

        Returns:
            Public reference of the stored file, e.g. /uploads/<uuid>.png
        """
        require_fields("User ID is required", user_id=user_id)
        if not filename or stream is None:
            raise InvalidUpload("No file uploaded")
        if not ALLOWED_IMAGE_PATTERN.search(filename):
            logger.warning(f"Rejected upload with disallowed name: {filename}")
            raise InvalidUpload()

        content = self._read_limited(stream)

        stored_name = f"{uuid.uuid4()}{Path(filename).suffix}"
        target = self.uploads_dir / stored_name
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info(f"Stored upload {stored_name} ({len(content)} bytes)")

        reference = f"/uploads/{stored_name}"
        try:
            return self.credentials.set_profile_picture(user_id, reference)
        except Exception:
            target.unlink(missing_ok=True)
            raise

    def _read_limited(self, stream: BinaryIO) -> bytes:
        chunks = []
        size = 0
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > self.max_upload_bytes:
                logger.warning(f"Rejected upload larger than {self.max_upload_bytes} bytes")
                raise InvalidUpload("File too large")
            chunks.append(chunk)
        return b"".join(chunks)


class MessagingService:
    """Presence updates and private 1:1 messages."""

    def __init__(
        self,
        conversations: ConversationStore,
        presence: PresenceTracker,
        credentials: CredentialStore,
    ):
        self.conversations = conversations
        self.presence = presence
        self.credentials = credentials

    def update_status(self, user_id: Optional[str], status: Optional[bool]) -> None:
        require_fields("User ID is required", user_id=user_id)
        if status:
            self.presence.set_online(user_id)
        else:
            self.presence.set_offline(user_id)

    def list_with_status(self) -> List[dict]:
        return self.presence.list_with_status(self.credentials.list_public())

    def fetch(self, user_id: Optional[str], receiver_id: Optional[str]) -> List[dict]:
        require_fields("User IDs are required", user_id=user_id, receiver_id=receiver_id)
        return self.conversations.fetch(user_id, receiver_id)

    def send(
        self,
        user_id: Optional[str],
        username: Optional[str],
        receiver_id: Optional[str],
        receiver_name: Optional[str],
        message: Optional[str],
    ) -> dict:
        require_fields(
            user_id=user_id,
            username=username,
            receiver_id=receiver_id,
            receiver_name=receiver_name,
            message=message,
        )
        self.presence.set_online(user_id)
        return self.conversations.append(user_id, username, receiver_id, receiver_name, message)


def build_services(settings: Settings, presence: Optional[PresenceTracker] = None):
    """
    Wire stores and services from settings.

    Returns:
        Tuple of (AccountService, MessagingService) sharing one presence tracker
    """
    presence = presence or PresenceTracker(window_seconds=settings.PRESENCE_WINDOW_SECONDS)
    credentials = CredentialStore(settings.users_file, settings.uploads_dir, presence=presence)
    conversations = ConversationStore(settings.private_chats_file, history_limit=settings.CHAT_HISTORY_LIMIT)

    accounts = AccountService(
        credentials,
        presence,
        settings.uploads_dir,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    )
    messaging = MessagingService(conversations, presence, credentials)
    return accounts, messaging
