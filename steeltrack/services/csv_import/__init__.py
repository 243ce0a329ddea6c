"""
CSV import engine

Importers for inventory, sales and combined reports. Each importer
module is imported directly, e.g. steeltrack.services.csv_import.sales_import.
"""
