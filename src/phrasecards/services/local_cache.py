"""Local key-value cache kept ahead of the document store."""
import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from phrasecards.config import settings
from phrasecards.models.serialization import (
    DocumentFormatError,
    UserRecord,
    decode_user_record,
    encode_user_record,
)

logger = logging.getLogger(__name__)


class LocalCache:
    """String values by key in a single JSON file.

    Unreadable files are treated as empty. Writes go to a temporary file that
    replaces the cache file, so a crash never leaves it half written.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, user_key: Optional[str] = None):
        self.path = Path(path) if path is not None else settings.cache.path
        self.user_key = user_key or settings.cache.user_key

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring cache file %s: not a mapping", self.path)
            return {}
        return {key: value for key, value in data.items() if isinstance(value, str)}

    def _dump(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Could not write cache file %s: %s", self.path, e)

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._dump(data)

    def load_user(self) -> Optional[UserRecord]:
        """The cached user record, or None when absent or unreadable."""
        raw = self.get(self.user_key)
        if raw is None:
            return None
        try:
            return decode_user_record(json.loads(raw))
        except (ValueError, DocumentFormatError) as e:
            logger.warning("Discarding unreadable cached user: %s", e)
            return None

    def save_user(self, record: UserRecord) -> None:
        self.set(self.user_key, json.dumps(encode_user_record(record), ensure_ascii=False))

    def clear_user(self) -> None:
        self.remove(self.user_key)
