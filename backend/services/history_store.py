"""Append-only ingestion history kept in a Supabase table."""
import logging
from typing import List
from supabase import create_client, Client

from models.document import HistoryEntry

logger = logging.getLogger(__name__)


class HistoryStore:
    """Records one entry per successful ingest; prior entries are never rewritten."""

    def __init__(self, supabase_url: str, supabase_key: str, table_name: str = "ingest_history"):
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required")

        self.table_name = table_name
        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info(f"HistoryStore initialized with table: {table_name}")

    def append(self, entry: HistoryEntry) -> None:
        """Insert a new history entry."""
        try:
            self.client.table(self.table_name).insert({
                "id": entry.id,
                "name": entry.name,
                "type": entry.type,
                "date": entry.date,
                "chunk_count": entry.chunk_count
            }).execute()
            logger.info(f"Recorded ingest of {entry.name} ({entry.chunk_count} chunks)")
        except Exception as e:
            logger.error(f"Error recording ingest history for {entry.name}: {e}")
            raise

    def list_entries(self) -> List[HistoryEntry]:
        """Return all entries, newest first."""
        try:
            result = self.client.table(self.table_name).select("*").order("date", desc=True).execute()
        except Exception as e:
            logger.error(f"Error reading ingest history: {e}")
            raise

        return [
            HistoryEntry(
                id=str(row["id"]),
                name=row["name"],
                type=row["type"],
                date=row["date"],
                chunk_count=row.get("chunk_count", 0)
            )
            for row in result.data or []
        ]
