"""Persistent file index backed by ChromaDB.

One collection row per FileRecord: the id and ``path`` metadata are the file
path, the document is the retained content and the stored embedding is the
record's vector.
"""

from pathlib import Path
from typing import Iterable, Optional

import chromadb
from chromadb.config import Settings

from .logging_config import get_logger
from .models import FileRecord

logger = get_logger(__name__)

COLLECTION_NAME = "file_index"
_UPSERT_BATCH = 256


def get_collection(persist_dir: str | Path, name: str = COLLECTION_NAME) -> chromadb.Collection:
    """Get or create the cosine-space collection under persist_dir."""
    persist_dir = Path(persist_dir)
    persist_dir.mkdir(parents=True, exist_ok=True)

    client = chromadb.PersistentClient(
        path=str(persist_dir),
        settings=Settings(
            anonymized_telemetry=False,
            allow_reset=True,
        ),
    )
    return client.get_or_create_collection(
        name=name,
        metadata={"hnsw:space": "cosine"},
    )


class FileIndexStore:
    """Saves and restores the file index between processes."""

    def __init__(self, persist_dir: str | Path, collection: Optional[chromadb.Collection] = None):
        self.persist_dir = Path(persist_dir)
        self._collection = collection

    @property
    def collection(self) -> chromadb.Collection:
        if self._collection is None:
            self._collection = get_collection(self.persist_dir)
        return self._collection

    def count(self) -> int:
        try:
            return self.collection.count()
        except Exception as e:
            logger.warning("Could not count file index rows: %s", e)
            return 0

    def save(self, records: Iterable[FileRecord]) -> None:
        """Replace the stored index with records (upsert current, delete stale)."""
        records = [r for r in records if r.embedding]
        current = {r.path for r in records}

        stale = [path for path in self._stored_paths() if path not in current]
        if stale:
            self.collection.delete(ids=stale)

        for i in range(0, len(records), _UPSERT_BATCH):
            batch = records[i:i + _UPSERT_BATCH]
            self.collection.upsert(
                ids=[r.path for r in batch],
                documents=[r.content for r in batch],
                embeddings=[r.embedding for r in batch],
                metadatas=[{"path": r.path, "last_modified": r.last_modified} for r in batch],
            )
        logger.debug("Saved %s records (%s stale removed)", len(records), len(stale))

    def load(self) -> list[FileRecord]:
        """Load every stored record. Returns [] if the store is unreadable."""
        try:
            results = self.collection.get(include=["documents", "embeddings", "metadatas"])
        except Exception as e:
            logger.warning("Could not load file index from %s: %s", self.persist_dir, e)
            return []

        ids = results.get("ids") or []
        documents = results.get("documents")
        embeddings = results.get("embeddings")
        metadatas = results.get("metadatas")
        if documents is None:
            documents = [""] * len(ids)
        if embeddings is None:
            embeddings = [[] for _ in ids]
        if metadatas is None:
            metadatas = [{} for _ in ids]

        records = []
        for path, document, embedding, metadata in zip(ids, documents, embeddings, metadatas):
            metadata = metadata or {}
            records.append(FileRecord(
                path=path,
                content=document or "",
                embedding=[float(x) for x in embedding],
                last_modified=float(metadata.get("last_modified", 0.0)),
            ))
        return records

    def _stored_paths(self) -> list[str]:
        try:
            return list(self.collection.get(include=[]).get("ids") or [])
        except Exception as e:
            logger.warning("Could not list stored paths: %s", e)
            return []

