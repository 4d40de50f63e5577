"""Blob Storage - Persistence for the serialized global state.

The whole state is one opaque JSON document under a single key. Every save
overwrites it; there are no partial writes. All I/O is contained here;
business logic is in the core module.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from google.cloud import firestore


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "nexusSleepData"


class StorageReadError(Exception):
    """The stored document exists or may exist but could not be read."""


class BlobStore(Protocol):
    """Key-value store holding the whole serialized state."""

    def load(self) -> str | None:
        """Return the last saved document, or None on first run.

        Raises:
            StorageReadError: If the store could not be read
        """
        ...

    def save(self, document: str) -> bool:
        """Overwrite the stored document. Returns True if successful."""
        ...


class MemoryBlobStore:
    """Process-local store, used for tests and throwaway sessions."""

    def __init__(self, document: str | None = None) -> None:
        self.document = document
        self.save_count = 0

    def load(self) -> str | None:
        return self.document

    def save(self, document: str) -> bool:
        self.document = document
        self.save_count += 1
        return True


class FileBlobStore:
    """Store the document as a UTF-8 JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read %s: %s", self.path, str(e))
            raise StorageReadError(str(e)) from e

    def save(self, document: str) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(document, encoding="utf-8")
            return True
        except OSError as e:
            logger.error("Failed to write %s: %s", self.path, str(e))
            return False


@dataclass
class FirestoreConfig:
    """Configuration for the Firestore blob store.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
        collection: Collection holding the state documents
        key: Document id of the state document
    """

    project_id: str | None = None
    database: str | None = None
    collection: str = "state"
    key: str = DEFAULT_STORAGE_KEY


class FirestoreBlobStore:
    """Persist the serialized state to a single Firestore document.

    Document structure:
        {collection}/{key}: { payload: "<json text>", updated_at }
    """

    def __init__(self, config: FirestoreConfig | None = None) -> None:
        """Initialize Firestore store.

        Args:
            config: Firestore configuration
        """
        self.config = config or FirestoreConfig()
        self._client: firestore.Client | None = None

    @property
    def client(self) -> firestore.Client:
        """Lazy initialization of Firestore client."""
        if self._client is None:
            kwargs: dict[str, Any] = {}
            if self.config.project_id:
                kwargs["project"] = self.config.project_id
            if self.config.database:
                kwargs["database"] = self.config.database
            self._client = firestore.Client(**kwargs)
        return self._client

    def _doc_ref(self) -> firestore.DocumentReference:
        """Get reference to the state document."""
        return self.client.collection(self.config.collection).document(self.config.key)

    def load(self) -> str | None:
        """Fetch the stored document.

        Returns:
            JSON text if found, None otherwise

        Raises:
            StorageReadError: If Firestore could not be reached
        """
        logger.debug("Loading state document: %s", self.config.key)
        try:
            doc = self._doc_ref().get()
            if not doc.exists:
                return None
            return doc.to_dict().get("payload")
        except Exception as e:
            logger.error("Failed to load state: %s", str(e))
            raise StorageReadError(str(e)) from e

    def save(self, document: str) -> bool:
        """Overwrite the stored document.

        Args:
            document: Serialized global state

        Returns:
            True if successful
        """
        logger.debug("Saving state document: %s", self.config.key)
        try:
            self._doc_ref().set({
                "payload": document,
                "updated_at": firestore.SERVER_TIMESTAMP,
            })
            return True
        except Exception as e:
            logger.error("Failed to save state: %s", str(e))
            return False


def blob_store_from_env() -> BlobStore:
    """Build the blob store selected by NIGHTNIGHT_STORAGE.

    Supported values: firestore (default), file, memory.
    """
    backend = os.environ.get("NIGHTNIGHT_STORAGE", "firestore").lower()
    key = os.environ.get("NIGHTNIGHT_STORAGE_KEY", DEFAULT_STORAGE_KEY)

    if backend == "memory":
        return MemoryBlobStore()
    if backend == "file":
        default_path = Path("~/.nightnight") / f"{key}.json"
        return FileBlobStore(os.environ.get("NIGHTNIGHT_DATA_PATH", str(default_path)))
    if backend != "firestore":
        raise ValueError(f"Unknown storage backend: {backend}")

    return FirestoreBlobStore(FirestoreConfig(
        project_id=os.environ.get("FIRESTORE_PROJECT"),
        database=os.environ.get("FIRESTORE_DATABASE"),
        key=key,
    ))
