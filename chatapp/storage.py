import copy
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from chatapp.config import Settings

logger = logging.getLogger(__name__)


class JsonFile:
    """
    A single pretty-printed JSON document on local disk.

    Reads never fail: a missing, unreadable or malformed file yields a copy of
    ``default``. Writes rewrite the whole file.
    """

    def __init__(self, path: Path, default: Any):
        self.path = Path(path)
        self.default = default
        self._lock = threading.RLock()

    def ensure(self) -> None:
        """Create the file with the default document if it does not exist."""
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.write(copy.deepcopy(self.default))
            logger.info(f"Created {self.path.name}")

    def read(self) -> Any:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {self.path}, treating as empty: {e}")
            return copy.deepcopy(self.default)

        if not isinstance(data, type(self.default)):
            logger.warning(f"Unexpected document type in {self.path}, treating as empty")
            return copy.deepcopy(self.default)
        return data

    def write(self, data: Any) -> None:
        logger.debug(f"Writing {self.path}")
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Hold the file lock for a full read-modify-write cycle.

        Only serialises writers inside this process.
        """
        with self._lock:
            yield


def init_storage(settings: Settings) -> None:
    """
    Create the data directory, both JSON stores and the uploads directory.
    Called during application startup.
    """
    logger.debug(f"Initializing storage in {settings.DATA_DIR}")
    try:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
        JsonFile(settings.users_file, []).ensure()
        JsonFile(settings.private_chats_file, {}).ensure()
        if not settings.uploads_dir.exists():
            settings.uploads_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created uploads directory")
        logger.info("Storage initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize storage: {e}")
        raise


def check_storage_health(settings: Settings) -> bool:
    """
    Check that both JSON stores parse and the uploads directory exists.

    Returns:
        True if storage is usable, False otherwise.
    """
    logger.debug("Checking storage health...")
    for path, expected in ((settings.users_file, list), (settings.private_chats_file, dict)):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Storage health check failed for {path}: {e}")
            return False
        if not isinstance(data, expected):
            logger.error(f"Storage health check failed: {path} is not a JSON {expected.__name__}")
            return False

    if not settings.uploads_dir.is_dir():
        logger.error(f"Uploads directory missing: {settings.uploads_dir}")
        return False

    logger.debug("Storage health check passed")
    return True
