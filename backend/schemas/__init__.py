from .chat_import import (
    CamelModel,
    ChatImportResponse,
    CsvFormatInfo,
    CsvFormatsResponse,
    CsvImportResponse,
    DateRange,
    ImportErrorResponse,
    ImportListResponse,
    ParseWarning,
    RollbackResponse,
    SenderResolutionEntry,
)

__all__ = [
    "CamelModel",
    # Import
    "CsvImportResponse",
    "DateRange",
    "ParseWarning",
    "SenderResolutionEntry",
    # History / rollback
    "ChatImportResponse",
    "ImportListResponse",
    "RollbackResponse",
    # Formats
    "CsvFormatInfo",
    "CsvFormatsResponse",
    # Errors
    "ImportErrorResponse",
]
