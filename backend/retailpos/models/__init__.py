from .auth import User, SessionToken
from .inventory import ProductCategory, ProductUnit, Product, Supplier
from .customers import Customer
from .sales import Sale, SaleLine, SalePayment
from .registers import CashSession

__all__ = [
    'User', 'SessionToken',
    'ProductCategory', 'ProductUnit', 'Product', 'Supplier',
    'Customer',
    'Sale', 'SaleLine', 'SalePayment',
    'CashSession',
]
