import logging
from pathlib import Path
from typing import Dict, List

from chatapp.errors import require_fields
from chatapp.models import MessageRecord
from chatapp.storage import JsonFile
from chatapp.utils import new_id, now_iso

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "_"


def conversation_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the thread between two users."""
    first, second = sorted([user_a, user_b])
    return f"{first}{KEY_SEPARATOR}{second}"


class ConversationStore:
    """
    Owns private_chats.json: conversation key -> list of messages.

    Lists are kept in append order and capped at ``history_limit`` entries,
    dropping the oldest first.
    """

    def __init__(self, path: Path, history_limit: int = 100):
        self.file = JsonFile(path, {})
        self.history_limit = history_limit

    def load_all(self) -> Dict[str, List[dict]]:
        """All conversations; malformed entries are skipped."""
        conversations = {}
        for key, history in self.file.read().items():
            if not isinstance(history, list):
                logger.warning(f"Skipping malformed conversation {key}")
                continue
            messages = []
            for raw in history:
                try:
                    messages.append(MessageRecord.model_validate(raw).to_storage())
                except ValueError as e:
                    logger.warning(f"Skipping malformed message in {key}: {e}")
            conversations[key] = messages
        return conversations

    def save_all(self, conversations: Dict[str, List[dict]]) -> None:
        self.file.write(conversations)

    def append(
        self,
        sender_id: str,
        sender_name: str,
        receiver_id: str,
        receiver_name: str,
        body: str,
    ) -> dict:
        """
        Store a new message between sender and receiver.

        Returns:
            The stored message as written to disk
        """
        require_fields(
            sender_id=sender_id,
            sender_name=sender_name,
            receiver_id=receiver_id,
            receiver_name=receiver_name,
            body=body,
        )

        key = conversation_key(sender_id, receiver_id)
        message = MessageRecord(
            id=new_id(),
            sender_id=sender_id,
            sender_name=sender_name,
            receiver_id=receiver_id,
            receiver_name=receiver_name,
            message=body,
            timestamp=now_iso(),
        ).to_storage()

        with self.file.transaction():
            conversations = self.load_all()
            history = conversations.get(key, [])
            history.append(message)
            if len(history) > self.history_limit:
                dropped = len(history) - self.history_limit
                history = history[-self.history_limit:]
                logger.debug(f"Conversation {key}: evicted {dropped} oldest messages")
            conversations[key] = history
            self.save_all(conversations)

        logger.info(f"Message stored: id={message['id']}, conversation={key}")
        return message

    def fetch(self, user_a: str, user_b: str) -> List[dict]:
        key = conversation_key(user_a, user_b)
        history = self.load_all().get(key, [])
        logger.debug(f"Conversation {key}: {len(history)} messages")
        return history
