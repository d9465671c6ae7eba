# src/promptimport/domain/users.py
import threading
from typing import Dict, Optional


class UserStore:
    """
    Per-user settings the pipeline needs, currently just the CivitAI API key.
    In-memory; the host application owns real user records.
    """

    def __init__(self) -> None:
        self._keys: Dict[str, str] = {}
        self._lock = threading.Lock()

    def set_civitai_key(self, user_id: str, key: str) -> None:
        with self._lock:
            self._keys[user_id] = key

    def clear_civitai_key(self, user_id: str) -> bool:
        with self._lock:
            return self._keys.pop(user_id, None) is not None

    def get_civitai_key(self, user_id: str) -> Optional[str]:
        with self._lock:
            return self._keys.get(user_id)

    def reset(self) -> None:
        with self._lock:
            self._keys.clear()
