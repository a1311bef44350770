"""Document ingestion data models."""
from dataclasses import dataclass, asdict
from typing import Any, Dict

PDF = "PDF"
FILE = "File"
TEXT = "Text"


@dataclass
class HistoryEntry:
    """One record in the append-only ingestion history."""
    id: str
    name: str
    type: str
    date: str  # ISO-8601
    chunk_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["chunkCount"] = data.pop("chunk_count")
        return data


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""
    source_name: str
    chunk_count: int
    entry: HistoryEntry

    @property
    def message(self) -> str:
        return f"Successfully indexed {self.chunk_count} chunks from {self.source_name}."
