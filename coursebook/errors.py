"""Error kinds raised at the sync boundary.

Every network or storage failure is converted to one of these where the I/O
happens. The progress engine turns them into a state plus a status string.
"""


class SyncError(Exception):
    """Base class for sync failures."""


class Unauthorized(SyncError):
    """Missing or malformed sync key. Never retried automatically."""


class BackendUnconfigured(SyncError):
    """The remote store has no credentials. Remote sync is off for the session."""


class TransientError(SyncError):
    """Network or server fault. The next debounced mutation retries."""


class PayloadTooLarge(SyncError):
    """Serialized record exceeds the wire limit. The write is dropped."""


class ImportRecordError(SyncError):
    """Import content is not a JSON object."""


class ParseError(SyncError):
    """Malformed locally cached data. Never surfaced to the user."""


class EncodeError(SyncError):
    """Record holds values JSON cannot represent (NaN, Infinity). The write is dropped."""
