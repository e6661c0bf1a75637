"""Record storage package.

Uploaded patient documents are catalogued by :class:`FileRegistry`, which
persists its state in a :class:`KeyValueStore` backed by SQLite through
:mod:`sqlalchemy`.
"""

from .database import KeyValueStore
from .models import FileRecord, StorageStats, UploadFile, UploadProgress
from .registry import FileRegistry
