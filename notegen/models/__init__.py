"""Schema models for the lesson note generator."""
from notegen.models.schemas import (
    NoteMode,
    MessagePart,
    ChatMessage,
    UploadedFile,
    ChatRequest,
    ExportRequest,
    ExtractTablesResponse,
    HealthCheckResponse,
)

__all__ = [
    "NoteMode",
    "MessagePart",
    "ChatMessage",
    "UploadedFile",
    "ChatRequest",
    "ExportRequest",
    "ExtractTablesResponse",
    "HealthCheckResponse",
]
