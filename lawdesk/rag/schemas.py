# FILE: lawdesk/rag/schemas.py
"""
Pydantic schemas for the query-answering pipeline.

CandidatePassage and UsedPassage are frozen: once the retrieval engine or
the context assembler has produced them nobody edits them.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CandidatePassage(BaseModel):
    """One passage returned by the vector store, similarity-descending."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[int] = None
    page_id: Optional[int] = None
    path: Optional[str] = None
    slug: Optional[str] = None
    heading: Optional[str] = None
    similarity: Optional[float] = None
    content: Optional[str] = None


class UsedPassage(BaseModel):
    """
    A passage actually placed in the model context.

    Field names are the wire names of the citation preamble.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    path: str
    heading: str
    similarity: float
    content_length: int
    token_count: int


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AskRequest(BaseModel):
    """
    Inbound request for POST /api/vector-search.

    prompt is optional here so that a missing prompt surfaces as a UserError
    (400) from the pipeline rather than a schema error.
    """
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    stream: Optional[Union[bool, str]] = None
    history: Optional[List[ConversationTurn]] = None
    history_limit: Optional[int] = Field(default=None, alias="historyLimit")

    def wants_stream(self) -> bool:
        """Streaming unless the caller opts out; only True or "true" count when given."""
        if self.stream is None:
            return True
        return self.stream is True or self.stream == "true"
