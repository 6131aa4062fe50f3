"""Progress engine: owns the canonical progress record for one device.

Boot resolves where state comes from:

    BOOTING -> LOCAL_ONLY       backend not configured, key invalid, or unreachable
            -> RESOLVING_REMOTE remote record wins; absent remote is seeded from
                                the local cache (or a fresh record); a transient
                                failure falls back to local but keeps sync on
            -> READY

Every mutation produces a new record, saves it locally right away, marks the
engine dirty and re-arms a debounce timer. When the timer fires the record
current at that moment is pushed. Failures never escape: they become a sync
state plus a human-readable status string.
"""

import json
import logging
from enum import Enum
from typing import Callable, Optional

from coursebook.config import SYNC_DEBOUNCE_SECONDS
from coursebook.errors import (
    BackendUnconfigured,
    EncodeError,
    ImportRecordError,
    PayloadTooLarge,
    SyncError,
    TransientError,
    Unauthorized,
)
from coursebook.models import (
    ProgressRecord,
    StudyPlan,
    generate_sync_key,
    normalize_sync_key,
    utc_now_iso,
)
from coursebook.services.course_data import CourseCatalog, get_course_catalog
from coursebook.services.local_store import LocalStore
from coursebook.services.plan_builder import build_plan
from coursebook.services.stats import completion_stats
from coursebook.services.sync_client import RemoteSyncClient

logger = logging.getLogger(__name__)

STATUS_NOT_STARTED = "not started"
STATUS_LOADED = "loaded"
STATUS_INITIALIZED = "initialized"
STATUS_PENDING = "pending"
STATUS_SAVED = "saved"
STATUS_SYNC_ERROR = "sync error"
STATUS_TOO_LARGE = "not synced (progress too large, kept locally)"
STATUS_LOCAL_UNCONFIGURED = "local only (sync backend not configured)"
STATUS_LOCAL_INVALID_KEY = "local only (invalid sync key)"
STATUS_LOCAL_SERVER_ERROR = "local only (server error)"


class EngineState(str, Enum):
    BOOTING = "booting"
    RESOLVING_REMOTE = "resolving_remote"
    LOCAL_ONLY = "local_only"
    READY = "ready"


class SyncState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ERROR = "error"


class ProgressEngine:
    """Reconciles local and remote progress and write-backs mutations.

    Args:
        store: Local persistence for the record and the sync key.
        client: Remote sync client.
        timer: Debounce timer with arm(delay, action), cancel() and shutdown().
        catalog: Lesson catalog used to build plans (process catalog if omitted).
        debounce_seconds: Delay after the last mutation before pushing.
        clock: Returns the current ISO timestamp.
    """

    def __init__(
        self,
        store: LocalStore,
        client: RemoteSyncClient,
        timer,
        catalog: CourseCatalog | None = None,
        debounce_seconds: float | None = None,
        clock: Callable[[], str] | None = None,
    ):
        self.store = store
        self.client = client
        self.timer = timer
        self.catalog = catalog
        self.debounce_seconds = SYNC_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.clock = clock or utc_now_iso

        self.state = EngineState.BOOTING
        self.sync_state = SyncState.IDLE
        self.sync_key: Optional[str] = None
        self.remote_enabled = False
        self.dirty = False
        self.status = STATUS_NOT_STARTED
        self.last_error: Optional[str] = None
        self._record = ProgressRecord.default(self.clock())

    @property
    def record(self) -> ProgressRecord:
        return self._record

    @property
    def local_only(self) -> bool:
        return not self.remote_enabled

    # -------------------------------------------------------------------------
    # Boot
    # -------------------------------------------------------------------------

    async def boot(self) -> EngineState:
        """Load or create the sync key, then resolve the starting record."""
        key = self.store.load_key()
        if not key:
            key = generate_sync_key()
            self.store.save_key(key)
            logger.info("Generated new sync key")
        return await self._resolve(key, self.store.load_local())

    async def _resolve(self, key: str, local: Optional[ProgressRecord]) -> EngineState:
        self.state = EngineState.BOOTING
        self.sync_state = SyncState.IDLE
        self.last_error = None
        self.sync_key = key
        self.remote_enabled = False

        if normalize_sync_key(key) is None:
            return self._go_local_only(local, STATUS_LOCAL_INVALID_KEY)

        if not await self.client.check_availability():
            return self._go_local_only(local, STATUS_LOCAL_UNCONFIGURED)

        self.state = EngineState.RESOLVING_REMOTE
        self.remote_enabled = True
        try:
            remote = await self.client.fetch_remote(key)
        except BackendUnconfigured:
            return self._go_local_only(local, STATUS_LOCAL_UNCONFIGURED)
        except Unauthorized:
            return self._go_local_only(local, STATUS_LOCAL_INVALID_KEY)
        except SyncError as e:
            logger.warning("Remote fetch failed, using local progress: %s", e)
            self._record = local or ProgressRecord.default(self.clock())
            self.dirty = False
            self.sync_state = SyncState.ERROR
            self.last_error = str(e)
            self.status = STATUS_LOCAL_SERVER_ERROR
            return self._ready()

        if remote is not None:
            self._record = ProgressRecord.from_dict(remote, self.clock())
            self.store.save_local(self._record)
            self.dirty = False
            self.status = STATUS_LOADED
            logger.info("Loaded remote progress (%d completed)", len(self._record.completed))
            return self._ready()

        # First use of this key: seed the remote with what we have
        self._record = local or ProgressRecord.default(self.clock())
        self.dirty = True
        if await self.push_now(self._record):
            self.status = STATUS_INITIALIZED
        return self._ready()

    def _go_local_only(self, local: Optional[ProgressRecord], status: str) -> EngineState:
        self.state = EngineState.LOCAL_ONLY
        self.remote_enabled = False
        self._record = local or ProgressRecord.default(self.clock())
        self.dirty = False
        self.status = status
        logger.info("Progress sync is %s", status)
        return self._ready()

    def _ready(self) -> EngineState:
        self.state = EngineState.READY
        return self.state

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def mark_complete(self, lesson_id: str, done: bool = True) -> ProgressRecord:
        return self._commit(self._record.with_completed(lesson_id, done, self.clock()))

    def set_note(self, lesson_id: str, text: str) -> ProgressRecord:
        return self._commit(self._record.with_note(lesson_id, text, self.clock()))

    def set_plan(self, hours_per_week: float, focus: str) -> StudyPlan:
        """Rebuild the study plan from the full catalog and store it."""
        now = self.clock()
        plan = build_plan(self._lessons(), hours_per_week, focus, now=now)
        self._commit(self._record.with_plan(plan, now))
        return plan

    def import_record(self, raw: str) -> ProgressRecord:
        """Replace progress with an exported record (partial records allowed).

        Raises:
            ImportRecordError: raw is not a JSON object. State is unchanged.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ImportRecordError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ImportRecordError("Import must be a JSON object")
        now = self.clock()
        return self._commit(ProgressRecord.from_dict(data, now).touched(now))

    def _commit(self, record: ProgressRecord) -> ProgressRecord:
        if self.state is not EngineState.READY:
            raise RuntimeError(f"Progress engine is not ready (state={self.state.value})")
        self._record = record
        self.store.save_local(record)
        self.dirty = True
        if self.remote_enabled:
            self.sync_state = SyncState.PENDING
            self.status = STATUS_PENDING
            self.timer.arm(self.debounce_seconds, self._push_from_timer)
        return record

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    async def _push_from_timer(self) -> None:
        await self.push_now()

    async def push_now(self, record: Optional[ProgressRecord] = None) -> bool:
        """Push to the remote store now.

        A no-op when sync is off, or when nothing is dirty and no explicit
        record is given. Returns True if the server accepted the write.
        """
        if not self.sync_key or not self.remote_enabled:
            return False
        if not self.dirty and record is None:
            return False

        snapshot = record or self._record
        try:
            await self.client.push_remote(self.sync_key, snapshot)
        except PayloadTooLarge as e:
            self._push_failed(STATUS_TOO_LARGE, e)
            return False
        except BackendUnconfigured as e:
            self._disable_remote(STATUS_LOCAL_UNCONFIGURED, e)
            return False
        except Unauthorized as e:
            self._disable_remote(STATUS_LOCAL_INVALID_KEY, e)
            return False
        except TransientError as e:
            self._push_failed(STATUS_SYNC_ERROR, e)
            return False
        except EncodeError as e:
            self._push_failed(STATUS_SYNC_ERROR, e)
            return False

        # A mutation that landed while the push was in flight keeps us dirty
        if self._record is snapshot:
            self.dirty = False
            self.sync_state = SyncState.IDLE
            self.status = STATUS_SAVED
        self.last_error = None
        logger.debug("Pushed progress (updatedAt=%s)", snapshot.updated_at)
        return True

    def _push_failed(self, status: str, error: Exception) -> None:
        logger.warning("Progress push failed: %s", error)
        self.sync_state = SyncState.ERROR
        self.status = status
        self.last_error = str(error)

    def _disable_remote(self, status: str, error: Exception) -> None:
        logger.warning("Disabling remote sync for this session: %s", error)
        self.timer.cancel()
        self.remote_enabled = False
        self.sync_state = SyncState.IDLE
        self.status = status
        self.last_error = str(error)

    async def flush(self) -> bool:
        """Cancel the debounce timer and push any pending change immediately."""
        self.timer.cancel()
        return await self.push_now()

    async def close(self) -> None:
        if self.state is EngineState.READY:
            await self.flush()
        self.timer.shutdown()

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def reset_identity(self) -> EngineState:
        """Start a new, empty profile under a fresh sync key.

        The old key and its remote record are left untouched.
        """
        self.timer.cancel()
        key = generate_sync_key()
        self.store.save_key(key)
        fresh = ProgressRecord.default(self.clock())
        self._record = fresh
        self.store.save_local(fresh)
        self.dirty = True
        logger.info("Reset sync identity")
        return await self._resolve(key, fresh)

    async def join(self, key: str) -> EngineState:
        """Link this device to an existing sync key.

        Raises:
            Unauthorized: key is malformed. Nothing changes.
        """
        sync_key = normalize_sync_key(key)
        if sync_key is None:
            raise Unauthorized("Sync key must be 10-128 characters")
        if self.state is EngineState.READY:
            await self.flush()
        self.store.save_key(sync_key)
        logger.info("Joined existing sync key")
        return await self._resolve(sync_key, self._record)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def export_record(self) -> str:
        return self._record.to_json(indent=2)

    def stats(self) -> dict:
        return completion_stats(self._record, self._lessons())

    def _lessons(self):
        catalog = self.catalog or get_course_catalog()
        return catalog.lessons
