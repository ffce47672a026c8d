"""
PosturePomo Record Storage

Local file storage for finalized work sessions (stand-in for the hosted
document store). One JSON document per record, grouped by user.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.config import settings

logger = logging.getLogger(__name__)


USER_ID_PATTERN = r"^[A-Za-z0-9_-]+$"

_SAFE_ID = re.compile(USER_ID_PATTERN)


class LocalRecordStore:
    """
    Local record storage.

    Stores each record at <base_path>/<user_id>/<record_id>.json.
    """

    def __init__(self, base_path: str = None):
        """
        Initialize local record storage.

        Args:
            base_path: Base directory. Defaults to settings.LOCAL_RECORDS_PATH
        """
        self.base_path = Path(base_path or settings.LOCAL_RECORDS_PATH)
        self.base_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"📁 LocalRecordStore initialized at: {self.base_path}")

    def _user_dir(self, user_id: str) -> Path:
        if not _SAFE_ID.match(user_id):
            raise ValueError(f"Invalid user id: {user_id!r}")
        return self.base_path / user_id

    def save_record(self, record: Dict[str, Any]) -> Path:
        """
        Save a record dict (must carry user_id and record_id).

        Returns:
            Path of the written file
        """
        user_dir = self._user_dir(record["user_id"])
        record_id = record["record_id"]
        if not _SAFE_ID.match(record_id):
            raise ValueError(f"Invalid record id: {record_id!r}")

        user_dir.mkdir(parents=True, exist_ok=True)
        path = user_dir / f"{record_id}.json"
        path.write_text(json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8")

        logger.info(f"💾 Record saved: {path}")
        return path

    def get_record(self, user_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        path = self._user_dir(user_id) / f"{record_id}.json"
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def list_records(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """List a user's records, newest end time first."""
        user_dir = self._user_dir(user_id)
        if not user_dir.exists():
            return []

        records = [
            json.loads(path.read_text(encoding="utf-8"))
            for path in user_dir.glob("*.json")
        ]
        records.sort(key=lambda r: r.get("end_time", ""), reverse=True)
        return records if limit is None else records[:limit]


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_store_instance: Optional[LocalRecordStore] = None

def get_storage() -> LocalRecordStore:
    """Get or create the global record store."""
    global _store_instance
    if _store_instance is None:
        _store_instance = LocalRecordStore()
    return _store_instance
