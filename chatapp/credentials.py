import logging
from pathlib import Path
from typing import List, Optional

from chatapp.errors import DuplicateEmail, DuplicateUsername, IncorrectPassword, UserNotFound
from chatapp.models import UserRecord
from chatapp.presence import PresenceTracker
from chatapp.storage import JsonFile
from chatapp.utils import hash_password, new_id, now_iso, verify_password

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Owns users.json: registration, authentication and profile mutations.

    Every mutation is a full read-modify-write of the file, performed while
    holding the file's transaction lock.
    """

    def __init__(self, path: Path, uploads_dir: Path, presence: Optional[PresenceTracker] = None):
        self.file = JsonFile(path, [])
        self.uploads_dir = Path(uploads_dir)
        self.presence = presence

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load_all(self) -> List[UserRecord]:
        """All user records; an unreadable store counts as empty."""
        records = []
        for raw in self.file.read():
            try:
                records.append(UserRecord.model_validate(raw))
            except ValueError as e:
                logger.warning(f"Skipping malformed user record: {e}")
        return records

    def save_all(self, records: List[UserRecord]) -> None:
        self.file.write([record.to_storage() for record in records])
        logger.debug(f"Saved {len(records)} user records")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, user_id: str) -> UserRecord:
        for record in self.load_all():
            if record.id == user_id:
                return record
        raise UserNotFound()

    def list_public(self) -> List[dict]:
        return [record.public() for record in self.load_all()]

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def register(self, username: str, email: str, password: str) -> dict:
        logger.info(f"Registering user: username={username}")
        with self.file.transaction():
            records = self.load_all()
            if any(r.username == username for r in records):
                raise DuplicateUsername()
            if any(r.email == email for r in records):
                raise DuplicateEmail()

            record = UserRecord(
                id=new_id(),
                username=username,
                email=email,
                password_hash=hash_password(password),
                profile_picture=None,
                created_at=now_iso(),
            )
            records.append(record)
            self.save_all(records)

        logger.info(f"User registered: id={record.id}")
        return record.public()

    def authenticate(self, username_or_email: str, password: str) -> dict:
        """Match on username or email, then check the password digest."""
        logger.info(f"Authenticating: {username_or_email}")
        record = next(
            (r for r in self.load_all()
             if r.username == username_or_email or r.email == username_or_email),
            None,
        )
        if record is None:
            raise UserNotFound()
        if not verify_password(password, record.password_hash):
            raise IncorrectPassword()
        return record.public()

    def update_profile(self, user_id: str, username: str, email: str) -> dict:
        logger.info(f"Updating profile: id={user_id}")
        with self.file.transaction():
            records = self.load_all()
            if any(r.username == username and r.id != user_id for r in records):
                raise DuplicateUsername()
            if any(r.email == email and r.id != user_id for r in records):
                raise DuplicateEmail()

            record = self._find(records, user_id)
            record.username = username
            record.email = email
            self.save_all(records)
        return record.public()

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        logger.info(f"Changing password: id={user_id}")
        with self.file.transaction():
            records = self.load_all()
            record = self._find(records, user_id)
            if not verify_password(current_password, record.password_hash):
                raise IncorrectPassword("Current password is incorrect")
            record.password_hash = hash_password(new_password)
            self.save_all(records)

    def delete_account(self, user_id: str, password: str) -> None:
        logger.info(f"Deleting account: id={user_id}")
        with self.file.transaction():
            records = self.load_all()
            record = self._find(records, user_id)
            if not verify_password(password, record.password_hash):
                raise IncorrectPassword()

            self.save_all([r for r in records if r.id != user_id])
            self._remove_picture(record.profile_picture)

        if self.presence is not None:
            self.presence.set_offline(user_id)
        logger.info(f"Account deleted: id={user_id}")

    def set_profile_picture(self, user_id: str, reference: str) -> str:
        """Store a new picture reference, deleting the previous file."""
        with self.file.transaction():
            records = self.load_all()
            record = self._find(records, user_id)
            previous = record.profile_picture
            record.profile_picture = reference
            self.save_all(records)
            self._remove_picture(previous)
        logger.info(f"Profile picture updated: id={user_id}, picture={reference}")
        return reference

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _find(records: List[UserRecord], user_id: str) -> UserRecord:
        for record in records:
            if record.id == user_id:
                return record
        raise UserNotFound()

    def picture_path(self, reference: str) -> Path:
        """Map a public reference such as /uploads/x.png to its file."""
        return self.uploads_dir / Path(reference).name

    def _remove_picture(self, reference: Optional[str]) -> None:
        if not reference:
            return
        path = self.picture_path(reference)
        try:
            path.unlink()
            logger.debug(f"Removed picture file {path}")
        except FileNotFoundError:
            logger.debug(f"Picture file already gone: {path}")
