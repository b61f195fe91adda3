"""In-memory vector store with a flat JSON snapshot format.

Handles:
- Sequential chunk id assignment
- Serialization to and from a list of chunk records
- Snapshot persistence on disk
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
import structlog

from ragchat.errors import SerializationError

logger = structlog.get_logger()


@dataclass
class Chunk:
    """A stored text segment with its embedding."""

    id: int
    text: str
    vector: List[float]
    metadata: str = ""


class ChunkRecord(BaseModel):
    """On-disk shape of a single chunk."""

    model_config = ConfigDict(strict=True)

    id: int
    chunk: str
    vector: List[float]
    metadata: str


_records_adapter = TypeAdapter(List[ChunkRecord])


@dataclass
class VectorStore:
    """Ordered collection of embedded chunks.

    Built incrementally during ingestion or loaded whole from a snapshot.
    Treated as read-only once queries start.
    """

    chunks: List[Chunk] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self.chunks)

    def add(
        self, text: str, vector: List[float], metadata: Optional[str] = None
    ) -> Chunk:
        """Append a chunk, assigning the next sequential id.

        Args:
            text: Chunk text
            vector: Embedding of the chunk
            metadata: Free-form metadata (defaults to the chunk text)

        Returns:
            The stored Chunk
        """
        chunk = Chunk(
            id=len(self.chunks),
            text=text,
            vector=[float(v) for v in vector],
            metadata=text if metadata is None else metadata,
        )
        self.chunks.append(chunk)
        return chunk

    def serialize(self) -> bytes:
        """Serialize the store as a JSON list of chunk records."""
        records = [
            {
                "id": chunk.id,
                "chunk": chunk.text,
                "vector": chunk.vector,
                "metadata": chunk.metadata,
            }
            for chunk in self.chunks
        ]
        return json.dumps(records, indent=2).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> "VectorStore":
        """Rebuild a store from serialize() output.

        Ids are kept exactly as recorded.

        Raises:
            SerializationError: If the data is not a valid list of chunk records
        """
        try:
            records = _records_adapter.validate_json(data)
        except ValidationError as e:
            logger.error("store_deserialize_failed", error_count=e.error_count())
            raise SerializationError(f"Malformed vector store: {e}") from e

        return cls(
            chunks=[
                Chunk(
                    id=record.id,
                    text=record.chunk,
                    vector=record.vector,
                    metadata=record.metadata,
                )
                for record in records
            ]
        )

    def save(self, path: Path) -> None:
        """Write a snapshot of the store to disk."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.serialize())

        logger.info("vector_store_saved", path=str(path), chunk_count=len(self))

    @classmethod
    def load(cls, path: Path) -> "VectorStore":
        """Load a snapshot written by save().

        Raises:
            FileNotFoundError: If the snapshot does not exist
            SerializationError: If the snapshot is malformed
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Vector store not found: {path}")

        store = cls.deserialize(path.read_bytes())

        logger.info("vector_store_loaded", path=str(path), chunk_count=len(store))

        return store

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        dimensions = sorted({len(chunk.vector) for chunk in self.chunks})
        return {
            "chunk_count": len(self.chunks),
            "dimensions": dimensions,
            "mixed_dimensions": len(dimensions) > 1,
        }
