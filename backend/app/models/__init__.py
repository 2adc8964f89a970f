from .tenancy import Tenant
from .inventory import Product, ProductInvoice, ProductUnit, StockMovement
from .requests import Request, RequestItem
from .audit import RequestEvent, RequestStatusAudit, Notification

__all__ = [
    'Tenant',
    'Product', 'ProductInvoice', 'ProductUnit', 'StockMovement',
    'Request', 'RequestItem',
    'RequestEvent', 'RequestStatusAudit', 'Notification',
]
