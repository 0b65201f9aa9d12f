from .auth import User, SessionToken, ROLES, STAFF_ROLES
from .catalog import Category, Product, ProductImage, ProductSizeStock, Review
from .inventory import StockMovement, MOVEMENT_REASONS
from .customers import Customer
from .sales import Sale, SaleLine
from .documents import Return, ReturnLine, Expense, DocumentSequence, RETURN_STATUSES, EXPENSE_CATEGORIES
from .audit import ActivityLog
from .settings import Setting
from .cart import Cart, CartItem

__all__ = [
    'User', 'SessionToken', 'ROLES', 'STAFF_ROLES',
    'Category', 'Product', 'ProductImage', 'ProductSizeStock', 'Review',
    'StockMovement', 'MOVEMENT_REASONS',
    'Customer',
    'Sale', 'SaleLine',
    'Return', 'ReturnLine', 'Expense', 'DocumentSequence', 'RETURN_STATUSES', 'EXPENSE_CATEGORIES',
    'ActivityLog',
    'Setting',
    'Cart', 'CartItem',
]
