"""API request and response models."""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class TurnModel(BaseModel):
    """A conversation turn as sent by the client."""
    role: Literal["user", "assistant"]
    content: str


class QueryRequest(BaseModel):
    """Query payload: a single question or a full message history."""
    query: Optional[str] = None
    messages: Optional[List[TurnModel]] = None
    stream: bool = True


class CitationModel(BaseModel):
    id: int
    text: str
    source: str
    score: float


class QueryResponse(BaseModel):
    """Blocking-mode query response."""
    answer: str
    citations: List[CitationModel] = Field(default_factory=list)
    timing: int  # milliseconds


class IngestResponse(BaseModel):
    success: bool
    count: int
    message: str


class HistoryEntryModel(BaseModel):
    id: str
    name: str
    type: str
    date: str
    chunkCount: int
