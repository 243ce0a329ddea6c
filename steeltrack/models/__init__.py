"""
SteelTrack Models
"""
from .inventory import AccessCredential, Dimension, Sale, SchemaMigration, StockLot

__all__ = [
    "AccessCredential",
    "StockLot",
    "Dimension",
    "Sale",
    "SchemaMigration",
]
