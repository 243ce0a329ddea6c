"""Import result and diagnostics schemas"""

from typing import Dict, List

from pydantic import BaseModel


class ImportResultResponse(BaseModel):
    success: int
    skipped: int
    failed: int
    inventory_imported: int
    sales_imported: int
    messages: List[str]


class EncryptionStatusResponse(BaseModel):
    total_lots: int
    total_sales: int
    has_encrypted_data: bool
    has_plaintext_data: bool
    encrypted_values: Dict[str, int]
    plaintext_values: Dict[str, int]


class EncryptLegacyResponse(BaseModel):
    lots_updated: int
    sales_updated: int
    values_encrypted: int
