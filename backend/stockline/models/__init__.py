from .company import Company, CompanyProduct
from .locations import Warehouse, Outlet
from .inventory import Product, WarehouseInventory, OutletInventory, RestockLog
from .documents import Shipment, ShipmentLine
from .sales import Sale, Layaway, LayawayItem, LayawayPayment

__all__ = [
    'Company', 'CompanyProduct',
    'Warehouse', 'Outlet',
    'Product', 'WarehouseInventory', 'OutletInventory', 'RestockLog',
    'Shipment', 'ShipmentLine',
    'Sale', 'Layaway', 'LayawayItem', 'LayawayPayment',
]
