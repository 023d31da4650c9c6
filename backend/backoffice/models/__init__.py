from .customers import Customer
from .invoices import Invoice
from .catalog import Product
from .orders import Order

__all__ = [
    'Customer',
    'Invoice',
    'Product',
    'Order',
]
