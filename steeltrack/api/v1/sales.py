"""
Sales API endpoints
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from steeltrack.api import deps
from steeltrack.core.security import AccessContext
from steeltrack.schemas.inventory import SaleResponse, SaleUpdate
from steeltrack.services.sales_service import SalesService

router = APIRouter()


@router.get("/{sale_id}", response_model=SaleResponse)
def get_sale(
    sale_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    service = SalesService(db, context)
    return service.sale_to_dict(service.get_sale(sale_id))


@router.put("/{sale_id}", response_model=SaleResponse)
def update_sale(
    sale_id: int,
    data: SaleUpdate,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Update a sale; a new quantity is checked against the rest of the lot"""
    return SalesService(db, context).update_sale(sale_id, data)


@router.delete("/{sale_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_sale(
    sale_id: int,
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    SalesService(db, context).delete_sale(sale_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
