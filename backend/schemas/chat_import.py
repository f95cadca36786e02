"""Response schemas for chat-history import endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from services.import_registry import as_utc


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class DateRange(CamelModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class SenderResolutionEntry(CamelModel):
    user_id: int
    confidence: str = Field(..., description="manual, exact, partial or fallback")


class ParseWarning(CamelModel):
    type: str
    reason: str
    count: Optional[int] = None
    labels: Optional[List[str]] = None


class CsvImportResponse(CamelModel):
    success: bool = True
    import_id: Optional[str] = Field(
        None, description="Null when the file contained nothing to import"
    )
    messages_imported: int = Field(..., ge=0)
    rows_skipped: int = Field(..., ge=0)
    date_range: DateRange
    sender_breakdown: Dict[str, int] = Field(default_factory=dict)
    unmatched_senders: List[str] = Field(default_factory=list)
    sender_resolution: Dict[str, SenderResolutionEntry] = Field(default_factory=dict)
    format: str
    format_confidence: float = Field(..., ge=0, le=100)
    warnings: List[ParseWarning] = Field(default_factory=list)


class RollbackResponse(CamelModel):
    success: bool = True
    import_id: str
    messages_removed: int = Field(..., ge=0)


class ChatImportResponse(CamelModel):
    """One ImportRecord as stored in the registry."""

    import_id: str
    chat_id: int
    uploaded_by: Optional[int] = None
    file_name: str
    format: str
    imported_at: Optional[datetime] = None
    message_count: int
    skipped_count: int
    date_range: DateRange
    sender_breakdown: Dict[str, int] = Field(default_factory=dict)

    @field_validator("imported_at")
    @classmethod
    def normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class ImportListResponse(CamelModel):
    success: bool = True
    total_imports: int = Field(..., ge=0)
    total_messages: int = Field(..., ge=0)
    imports: List[ChatImportResponse]


class CsvFormatInfo(CamelModel):
    name: str
    description: str
    required_columns: List[str]
    optional_columns: List[str]
    date_formats: List[str]


class CsvFormatsResponse(CamelModel):
    success: bool = True
    formats: Dict[str, CsvFormatInfo]


class ImportErrorResponse(BaseModel):
    """Error body returned by every import endpoint."""

    success: bool = False
    error: str = Field(..., description="Machine-readable error kind, e.g. TooLarge")
    details: str = Field(..., description="Safe, human-readable description")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"success": False, "error": "TooLarge", "details": "File too large. Maximum size is 50 MB"},
                {"success": False, "error": "ImportNotFound", "details": "Import not found"},
            ]
        }
    }
