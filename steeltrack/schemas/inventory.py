"""Stock Lot, Dimension and Sale Schemas"""

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Enums
class SteelType(str, Enum):
    E = "E"
    GA = "GA"
    GA1 = "GA1"
    TYPE_4 = "4"
    TYPE_5 = "5"
    TYPE_4N = "4N"
    TYPE_4G = "4G"
    SCRAP = "Scrap"
    PAINT = "Paint"
    OTHERS = "Others"


class Quality(str, Enum):
    SOFT = "Soft"
    HARD = "Hard"
    SEMI = "Semi"


class SaleForm(str, Enum):
    COIL = "Coil"
    SHEET = "Sheet"


STEEL_TYPES = [t.value for t in SteelType]
QUALITIES = [q.value for q in Quality]
SALE_FORMS = [f.value for f in SaleForm]


# Dimension Schemas
class DimensionIn(BaseModel):
    thickness: Decimal = Field(..., ge=0)
    width: int = Field(..., ge=0)

    @field_validator("thickness")
    @classmethod
    def round_thickness(cls, v):
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @field_validator("width", mode="before")
    @classmethod
    def round_width(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return int(Decimal(str(v)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class DimensionResponse(BaseModel):
    id: int
    thickness: Decimal
    width: int
    text: str

    model_config = ConfigDict(from_attributes=True)


# Stock Lot Schemas
class StockLotBase(BaseModel):
    entry_date: date
    serial_number: str = Field(..., min_length=1, max_length=100)
    steel_type: SteelType
    weight: Decimal = Field(..., gt=0)
    lot_code: str = Field(..., min_length=1, max_length=100)
    quality: Quality
    coating: Optional[str] = None
    specifications: Optional[str] = None
    form: Optional[str] = None
    customer_name: Optional[str] = None

    @field_validator("serial_number", "lot_code")
    @classmethod
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class StockLotCreate(StockLotBase):
    dimensions: List[DimensionIn] = Field(..., min_length=1)


class StockLotUpdate(BaseModel):
    entry_date: Optional[date] = None
    serial_number: Optional[str] = Field(None, min_length=1, max_length=100)
    steel_type: Optional[SteelType] = None
    weight: Optional[Decimal] = Field(None, gt=0)
    lot_code: Optional[str] = Field(None, min_length=1, max_length=100)
    quality: Optional[Quality] = None
    coating: Optional[str] = None
    specifications: Optional[str] = None
    form: Optional[str] = None
    customer_name: Optional[str] = None
    dimensions: Optional[List[DimensionIn]] = Field(None, min_length=1)


class StockLotResponse(BaseModel):
    """Decrypted stock lot; fields that failed to decrypt hold the stored text"""
    id: int
    entry_date: date
    serial_number: str
    steel_type: str
    weight: Union[Decimal, str]
    lot_code: str
    quality: str
    coating: Optional[str] = None
    specifications: Optional[str] = None
    form: Optional[str] = None
    customer_name: Optional[str] = None
    completed: bool
    at_dc: bool
    dimensions: List[DimensionResponse] = []
    total_sold: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StockLotFilter(BaseModel):
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    steel_types: Optional[List[str]] = None
    qualities: Optional[List[str]] = None
    lot_code: Optional[str] = None
    serial_number: Optional[str] = None
    coating: Optional[str] = None
    specifications: Optional[str] = None
    form: Optional[str] = None
    customer_name: Optional[str] = None
    thickness_min: Optional[Decimal] = None
    thickness_max: Optional[Decimal] = None
    width_min: Optional[int] = None
    width_max: Optional[int] = None
    weight_min: Optional[Decimal] = None
    weight_max: Optional[Decimal] = None
    completed: Optional[bool] = None
    at_dc: Optional[bool] = None


class BalanceResponse(BaseModel):
    stock_lot_id: int
    weight: Decimal
    total_sold: Decimal
    balance: Decimal


class CompletionRequest(BaseModel):
    completed: bool


class DCRequest(BaseModel):
    at_dc: bool


class DCBulkRequest(BaseModel):
    stock_lot_ids: List[int] = Field(..., min_length=1)
    at_dc: bool


class DCBulkResponse(BaseModel):
    updated: List[int]


# Sale Schemas
class SaleCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    quantity_sold: Decimal = Field(..., gt=0)
    form: Optional[SaleForm] = None
    sale_date: date
    dimensions_snapshot: Optional[List[str]] = None

    @field_validator("customer_name")
    @classmethod
    def strip_customer(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class SaleUpdate(BaseModel):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    quantity_sold: Optional[Decimal] = Field(None, gt=0)
    form: Optional[SaleForm] = None
    sale_date: Optional[date] = None
    dimensions_snapshot: Optional[List[str]] = None


class SaleResponse(BaseModel):
    id: int
    stock_lot_id: int
    customer_name: str
    quantity_sold: Union[Decimal, str]
    form: Optional[str] = None
    sale_date: date
    dimensions_snapshot: Optional[Union[List[str], str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
