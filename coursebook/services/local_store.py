"""Local persistence for the progress snapshot and the sync key.

Both live in their own file under the state directory, with versioned names
so a future schema can migrate without colliding with older data. Reads and
writes never raise: a failure is logged and becomes "absent" on read and a
no-op on write.
"""

import logging
from pathlib import Path
from typing import Optional

from coursebook.config import LOCAL_STATE_DIR
from coursebook.errors import ParseError
from coursebook.models import ProgressRecord

logger = logging.getLogger(__name__)

PROGRESS_FILENAME = "course-progress-local-v1.json"
KEY_FILENAME = "course-sync-key-v1"


class LocalStore:
    """File-backed store for one device's cached progress and sync key."""

    def __init__(self, state_dir: Path | None = None):
        self.state_dir = Path(state_dir or LOCAL_STATE_DIR)
        self.progress_path = self.state_dir / PROGRESS_FILENAME
        self.key_path = self.state_dir / KEY_FILENAME

    def load_local(self) -> Optional[ProgressRecord]:
        """Cached progress record, or None if missing or unreadable."""
        try:
            text = self.progress_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", self.progress_path, e)
            return None
        try:
            return ProgressRecord.from_json(text)
        except ParseError as e:
            logger.debug("Ignoring corrupt progress cache %s: %s", self.progress_path, e)
            return None

    def save_local(self, record: ProgressRecord) -> None:
        self._write(self.progress_path, record.to_json())

    def load_key(self) -> Optional[str]:
        try:
            key = self.key_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", self.key_path, e)
            return None
        return key or None

    def save_key(self, key: str) -> None:
        self._write(self.key_path, key)

    def _write(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write %s: %s", path, e)
