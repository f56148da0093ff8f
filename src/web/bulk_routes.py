"""
Bulk operation API.

Endpoints used by the bulk actions bar, wizard and progress dialog. Every
response carries ``success``; failures add ``errors`` (a list of strings).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from ..models.api_validation import BulkOperationRequest, BulkSelectRequest
from ..operations.exceptions import (
    BulkOperationError,
    InvalidStateError,
    OperationFault,
    OperationNotFoundError,
    RequestError,
)
from ..operations.orchestrator import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bulk", tags=["bulk"])


def _error_response(exc: BulkOperationError) -> JSONResponse:
    """Map the bulk error taxonomy onto HTTP statuses."""
    if isinstance(exc, RequestError):
        return JSONResponse(status_code=400, content={"success": False, "message": str(exc), "errors": exc.errors})
    if isinstance(exc, OperationNotFoundError):
        return JSONResponse(status_code=404, content={"success": False, "errors": [str(exc)]})
    if isinstance(exc, InvalidStateError):
        return JSONResponse(status_code=409, content={"success": False, "errors": [str(exc)]})
    if isinstance(exc, OperationFault):
        logger.error(f"Bulk request failed: {exc}")
        return JSONResponse(status_code=503, content={"success": False, "errors": [str(exc)]})
    logger.error(f"Bulk request failed: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "errors": [str(exc)]})


@router.get("/actions/{item_type}")
async def list_actions(item_type: str):
    """Actions available for a record type."""
    try:
        return {"success": True, "actions": get_orchestrator().list_actions(item_type)}
    except BulkOperationError as e:
        return _error_response(e)


@router.post("/select")
async def select_bulk_targets(request: BulkSelectRequest):
    """Records matching the selection filters (target picker)."""
    try:
        records = await get_orchestrator().select(request)
        items = [record.to_item() for record in records]
        return {"success": True, "items": items, "count": len(items)}
    except BulkOperationError as e:
        return _error_response(e)


@router.post("/validate")
async def validate_bulk_operation(request: BulkOperationRequest):
    """Dry-run validation. Never mutates anything."""
    orchestrator = get_orchestrator()
    try:
        descriptor = orchestrator.descriptor_from_request(request)
        report = await orchestrator.validate(descriptor)
        return {"success": True, "validation": report.to_dict()}
    except BulkOperationError as e:
        return _error_response(e)


@router.post("/preview")
async def preview_bulk_operation(request: BulkOperationRequest):
    """Field-level before/after for every target."""
    orchestrator = get_orchestrator()
    try:
        descriptor = orchestrator.descriptor_from_request(request)
        preview = await orchestrator.preview(descriptor)
        return {"success": True, "preview": preview.to_dict()}
    except BulkOperationError as e:
        return _error_response(e)


@router.post("/execute", status_code=202)
async def execute_bulk_operation(request: BulkOperationRequest):
    """Start execution; poll /progress/{operationId} for the outcome."""
    orchestrator = get_orchestrator()
    try:
        descriptor = orchestrator.descriptor_from_request(request)
        operation_id = await orchestrator.execute(descriptor)
        operation = await orchestrator.progress(operation_id)
        return {"success": True, "operationId": operation_id, "operation": operation.to_dict()}
    except BulkOperationError as e:
        return _error_response(e)


@router.get("/progress/{operation_id}")
async def get_bulk_progress(operation_id: str):
    try:
        operation = await get_orchestrator().progress(operation_id)
        return {"success": True, "progress": operation.to_dict()}
    except BulkOperationError as e:
        return _error_response(e)


@router.post("/cancel/{operation_id}")
async def cancel_bulk_operation(operation_id: str):
    """Cooperative cancel: in-flight writes finish, nothing new starts."""
    try:
        operation = await get_orchestrator().cancel(operation_id)
        return {"success": True, "progress": operation.to_dict()}
    except BulkOperationError as e:
        return _error_response(e)


@router.post("/rollback/{operation_id}")
async def rollback_bulk_operation(operation_id: str):
    """Restore every record the operation changed (single use)."""
    try:
        result = await get_orchestrator().rollback(operation_id)
        return {"success": True, "rollback": result.to_dict()}
    except BulkOperationError as e:
        return _error_response(e)


@router.get("/operations")
async def list_bulk_operations(
    status: Optional[str] = None,
    type: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
):
    """Operation history, newest first."""
    try:
        operations = get_orchestrator().history(status=status, target_type=type, limit=limit)
        return {"success": True, "operations": [op.to_summary() for op in operations]}
    except BulkOperationError as e:
        return _error_response(e)
