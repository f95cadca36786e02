"""API routes for importing chat history from CSV exports."""

import json
from typing import Dict, Optional

from api.dependencies import get_import_pipeline
from db.database import get_db
from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from models.chat_import import ChatImport
from models.user import User
from schemas.chat_import import (
    ChatImportResponse,
    CsvFormatsResponse,
    CsvImportResponse,
    DateRange,
    ImportErrorResponse,
    ImportListResponse,
    RollbackResponse,
)
from services.auth import get_current_user
from services.chat_csv_parser import AUTO_FORMAT, csv_template, supported_formats
from services.import_pipeline import ImportPipeline
from services.import_registry import import_stats
from services.import_rollback import rollback_import
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/chats", tags=["chat-imports"])

ERROR_RESPONSES = {
    code: {"model": ImportErrorResponse}
    for code in (400, 403, 404, 413, 415, 422, 500)
}


def parse_sender_map(raw: Optional[str]) -> Optional[Dict[str, int]]:
    """Decode the optional ``sender_map`` form field: {"label": user_id, ...}."""
    if raw is None or not raw.strip():
        return None

    error = HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail="sender_map must be a JSON object mapping sender labels to user ids",
    )
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise error
    if not isinstance(data, dict):
        raise error

    result = {}
    for label, user_id in data.items():
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise error
        result[str(label)] = user_id
    return result


def build_import_record_response(record: ChatImport) -> ChatImportResponse:
    return ChatImportResponse(
        import_id=record.import_id,
        chat_id=record.chat_id,
        uploaded_by=record.uploaded_by,
        file_name=record.file_name,
        format=record.format,
        imported_at=record.imported_at,
        message_count=record.message_count,
        skipped_count=record.skipped_count,
        date_range=DateRange(start=record.date_range_start, end=record.date_range_end),
        sender_breakdown=record.sender_breakdown or {},
    )


@router.get("/csv-formats", response_model=CsvFormatsResponse)
async def get_csv_formats():
    """List the supported export layouts and their columns."""
    return CsvFormatsResponse(formats=supported_formats())


@router.get("/csv-template/{format}", responses=ERROR_RESPONSES)
async def get_csv_template(format: str):
    """Download a small sample CSV for the given format."""
    content = csv_template(format)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{format.lower()}-template.csv"'},
    )


@router.post(
    "/{chat_id}/csv-import",
    response_model=CsvImportResponse,
    responses=ERROR_RESPONSES,
)
async def import_chat_csv(
    chat_id: int,
    file: UploadFile = File(..., description="Chat export (.csv)"),
    format: str = Form(AUTO_FORMAT),
    sender_map: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    pipeline: ImportPipeline = Depends(get_import_pipeline),
):
    """
    Import a chat export into a two-person chat.

    Only participants may import. Unparseable rows are skipped and reported
    in ``warnings``; sender labels without a matching participant are
    attributed to the uploader unless strict matching is enabled.
    """
    overrides = parse_sender_map(sender_map)
    outcome = await pipeline.run(
        chat_id=chat_id,
        user_id=current_user.id,
        file=file,
        fmt=format,
        sender_map=overrides,
    )
    summary = outcome.summary

    return CsvImportResponse(
        import_id=summary.import_id,
        messages_imported=summary.messages_imported,
        rows_skipped=summary.rows_skipped,
        date_range=DateRange(start=summary.date_range_start, end=summary.date_range_end),
        sender_breakdown=summary.sender_breakdown,
        unmatched_senders=summary.unmatched_senders,
        sender_resolution=summary.sender_resolution,
        format=outcome.format,
        format_confidence=outcome.format_confidence,
        warnings=outcome.warnings,
    )


@router.post(
    "/{chat_id}/imports/{import_id}/rollback",
    response_model=RollbackResponse,
    responses=ERROR_RESPONSES,
)
async def rollback_chat_import(
    chat_id: int,
    import_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remove every message of one import. A second call returns 404."""
    result = await rollback_import(db, chat_id, import_id, current_user.id)
    return RollbackResponse(import_id=result.import_id, messages_removed=result.messages_removed)


@router.get(
    "/{chat_id}/imports",
    response_model=ImportListResponse,
    responses=ERROR_RESPONSES,
)
async def list_chat_imports(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Import history for a chat, oldest first."""
    stats = await import_stats(db, chat_id, current_user.id)
    return ImportListResponse(
        total_imports=stats.total_imports,
        total_messages=stats.total_messages,
        imports=[build_import_record_response(record) for record in stats.imports],
    )
