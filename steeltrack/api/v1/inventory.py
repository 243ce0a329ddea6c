"""
Stock Lot API endpoints
"""
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from steeltrack.api import deps
from steeltrack.core.security import AccessContext
from steeltrack.schemas.inventory import (
    BalanceResponse, CompletionRequest, DCBulkRequest, DCBulkResponse, DCRequest,
    DimensionIn, DimensionResponse, SaleCreate, SaleResponse, StockLotCreate,
    StockLotFilter, StockLotResponse, StockLotUpdate
)
from steeltrack.services.inventory_service import InventoryService
from steeltrack.services.sales_service import SalesService

router = APIRouter()


@router.get("/", response_model=List[StockLotResponse])
def list_stock_lots(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    steel_types: Optional[List[str]] = Query(None),
    qualities: Optional[List[str]] = Query(None),
    lot_code: Optional[str] = None,
    serial_number: Optional[str] = None,
    coating: Optional[str] = None,
    specifications: Optional[str] = None,
    form: Optional[str] = None,
    customer_name: Optional[str] = None,
    thickness_min: Optional[Decimal] = None,
    thickness_max: Optional[Decimal] = None,
    width_min: Optional[int] = None,
    width_max: Optional[int] = None,
    weight_min: Optional[Decimal] = None,
    weight_max: Optional[Decimal] = None,
    completed: Optional[bool] = None,
    at_dc: Optional[bool] = None,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """
    List stock lots with balances, newest entry first.
    """
    filters = StockLotFilter(
        date_from=date_from, date_to=date_to, steel_types=steel_types, qualities=qualities,
        lot_code=lot_code, serial_number=serial_number, coating=coating,
        specifications=specifications, form=form, customer_name=customer_name,
        thickness_min=thickness_min, thickness_max=thickness_max,
        width_min=width_min, width_max=width_max,
        weight_min=weight_min, weight_max=weight_max,
        completed=completed, at_dc=at_dc,
    )
    return InventoryService(db, context).list_lots(filters)


@router.post("/", response_model=StockLotResponse, status_code=status.HTTP_201_CREATED)
def create_stock_lot(
    data: StockLotCreate,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Add a stock lot with at least one dimension"""
    return InventoryService(db, context).add_lot(data)


@router.post("/dc/bulk", response_model=DCBulkResponse)
def bulk_set_dc(
    request: DCBulkRequest,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Send several lots to the distribution center, or return them"""
    updated = InventoryService(db, context).bulk_set_dc(request.stock_lot_ids, request.at_dc)
    return DCBulkResponse(updated=updated)


@router.put("/lots/{lot_code}/completion")
def set_lot_completion(
    lot_code: str,
    request: CompletionRequest,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Mark every stock lot with this lot code as completed or not"""
    updated = InventoryService(db, context).set_lot_completion(lot_code, request.completed)
    return {"lot_code": lot_code, "completed": request.completed, "updated": updated}


@router.get("/{stock_lot_id}", response_model=StockLotResponse)
def get_stock_lot(
    stock_lot_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    return InventoryService(db, context).get_lot_dict(stock_lot_id)


@router.put("/{stock_lot_id}", response_model=StockLotResponse)
def update_stock_lot(
    stock_lot_id: int,
    data: StockLotUpdate,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Update a stock lot; a dimensions list replaces the existing one"""
    return InventoryService(db, context).update_lot(stock_lot_id, data)


@router.delete("/{stock_lot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_stock_lot(
    stock_lot_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Delete a stock lot together with its dimensions and sales"""
    InventoryService(db, context).delete_lot(stock_lot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{stock_lot_id}/balance", response_model=BalanceResponse)
def get_balance(
    stock_lot_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    return InventoryService(db, context).lot_balance(stock_lot_id)


@router.post(
    "/{stock_lot_id}/dimensions",
    response_model=DimensionResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_dimension(
    stock_lot_id: int,
    dimension: DimensionIn,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    return InventoryService(db, context).add_dimension(
        stock_lot_id, dimension.thickness, dimension.width
    )


@router.delete("/{stock_lot_id}/dimensions/{dimension_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_dimension(
    stock_lot_id: int,
    dimension_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    InventoryService(db, context).remove_dimension(stock_lot_id, dimension_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{stock_lot_id}/dc", response_model=StockLotResponse)
def set_dc(
    stock_lot_id: int,
    request: DCRequest,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Send a lot to the distribution center or return it to the warehouse"""
    return InventoryService(db, context).set_dc(stock_lot_id, request.at_dc)


@router.get("/{stock_lot_id}/sales", response_model=List[SaleResponse])
def list_sales(
    stock_lot_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    return SalesService(db, context).list_sales(stock_lot_id)


@router.post(
    "/{stock_lot_id}/sales",
    response_model=SaleResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_sale(
    stock_lot_id: int,
    data: SaleCreate,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Record a sale; the quantity must fit in the remaining balance"""
    return SalesService(db, context).add_sale(stock_lot_id, data)
