"""
CSV Import API endpoints
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from steeltrack.api import deps
from steeltrack.core.config import settings
from steeltrack.core.security import AccessContext
from steeltrack.schemas.system import ImportResultResponse
from steeltrack.services.csv_import.combined_import import CombinedImporter
from steeltrack.services.csv_import.inventory_import import InventoryImporter
from steeltrack.services.csv_import.parser import decode_csv_bytes
from steeltrack.services.csv_import.sales_import import SalesImporter

logger = logging.getLogger(__name__)

router = APIRouter()


def _read_upload(file: UploadFile) -> str:
    """Check and decode an upload, reading at most one byte past the size limit"""
    if file.filename and not file.filename.lower().endswith((".csv", ".tsv", ".txt")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .csv, .tsv or .txt files are accepted"
        )
    content = file.file.read(settings.MAX_UPLOAD_SIZE + 1)
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.MAX_UPLOAD_SIZE} bytes"
        )
    logger.info(f"Received import file {file.filename} ({len(content)} bytes)")
    return decode_csv_bytes(content)


@router.post("/inventory", response_model=ImportResultResponse)
def import_inventory(
    file: UploadFile = File(...),
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """
    Import stock lots. Rows whose serial number already exists are skipped.
    """
    text = _read_upload(file)
    return InventoryImporter(db, context).import_text(text).to_dict()


@router.post("/sales", response_model=ImportResultResponse)
def import_sales(
    file: UploadFile = File(...),
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """
    Import sales in either the dashboard or the sales dialog layout.
    """
    text = _read_upload(file)
    return SalesImporter(db, context).import_text(text).to_dict()


@router.post("/combined", response_model=ImportResultResponse)
def import_combined(
    file: UploadFile = File(...),
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """
    Import stock lots together with their sales, tab or comma delimited.
    """
    text = _read_upload(file)
    return CombinedImporter(db, context).import_text(text).to_dict()
