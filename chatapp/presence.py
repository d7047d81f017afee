import logging
import threading
import time
from typing import Callable, Dict, Iterable, List

logger = logging.getLogger(__name__)


class PresenceTracker:
    """
    In-memory online status keyed by user id.

    Each entry is the instant of the user's last heartbeat. An entry older
    than ``window_seconds`` counts as offline and is dropped the next time
    statuses are listed. Nothing is persisted.
    """

    def __init__(self, window_seconds: float = 120, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def set_online(self, user_id: str) -> None:
        with self._lock:
            self._last_seen[user_id] = self._clock()
        logger.debug(f"User {user_id} marked online")

    def set_offline(self, user_id: str) -> None:
        with self._lock:
            self._last_seen.pop(user_id, None)
        logger.debug(f"User {user_id} marked offline")

    def purge_expired(self) -> int:
        """Drop entries whose heartbeat is older than the window."""
        now = self._clock()
        with self._lock:
            expired = [
                user_id for user_id, seen in self._last_seen.items()
                if now - seen > self.window_seconds
            ]
            for user_id in expired:
                del self._last_seen[user_id]
        if expired:
            logger.info(f"Purged {len(expired)} expired presence entries")
        return len(expired)

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            seen = self._last_seen.get(user_id)
        return seen is not None and self._clock() - seen <= self.window_seconds

    def list_with_status(self, users: Iterable[dict]) -> List[dict]:
        """
        Annotate each public user dict with an ``isOnline`` flag.

        Expired entries are purged first.
        """
        self.purge_expired()
        with self._lock:
            online = set(self._last_seen)
        return [{**user, "isOnline": user["id"] in online} for user in users]
