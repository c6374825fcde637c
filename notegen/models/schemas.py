"""
Pydantic schemas for request/response validation.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Literal
from datetime import datetime
from enum import Enum


class NoteMode(str, Enum):
    """How the weekly topics for a note request were supplied."""

    CUSTOM = "custom"
    SPREADSHEET = "spreadsheet"
    CONVERSATIONAL = "conversational"


# Chat Schemas
class MessagePart(BaseModel):
    """One part of a chat message; only ``text`` parts carry prompt text."""

    type: str = "text"
    text: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class ChatMessage(BaseModel):
    """A chat message as sent by the UI transcript."""

    id: Optional[str] = None
    role: Literal["system", "user", "assistant"]
    parts: List[MessagePart] = Field(default_factory=list)
    content: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    def text(self) -> str:
        """Join the text parts (or the legacy ``content`` string) with spaces."""
        texts = [p.text for p in self.parts if p.type == "text" and p.text]
        if not texts and self.content:
            texts = [self.content]
        return " ".join(texts)


class UploadedFile(BaseModel):
    """Base64-encoded file attached to a chat request."""

    name: str = ""
    type: Optional[str] = None
    data: str = ""


class ChatRequest(BaseModel):
    """Schema for POST /api/chat."""

    messages: List[ChatMessage] = Field(default_factory=list)
    model: Optional[str] = None
    web_search: Optional[bool] = Field(None, alias="webSearch")
    file: Optional[UploadedFile] = None
    selected_column: Optional[int] = Field(None, alias="selectedColumn")
    weekly_selections: Optional[Dict[int, List[str]]] = Field(None, alias="weeklySelections")
    class_level: Optional[str] = Field(None, alias="classLevel")

    model_config = ConfigDict(populate_by_name=True)


# Export Schemas
class ExportRequest(BaseModel):
    """Schema for POST /api/export."""

    format: Literal["docx", "pdf", "html"]
    content: str = Field(..., min_length=1)


# Table Extraction Schemas
class ExtractTablesResponse(BaseModel):
    """Tables detected in an uploaded PDF; each table is a list of rows."""

    tables: List[List[List[str]]]


# Health Schemas
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    knowledge_documents: int
    llm_provider: str
    llm_configured: bool
    timestamp: datetime
    version: str = "0.1.0"
