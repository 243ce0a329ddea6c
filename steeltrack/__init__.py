"""
SteelTrack
Inventory, sales and CSV import backend for steel stock lots
"""
__version__ = "1.0.0"
