from .auth import User, SessionToken
from .inventory import Product, StockMovement
from .sales import Sale, SaleItem
from .customers import Client
from .treasury import Expense, FinancialGoal
from .settings import CompanyConfig

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockMovement',
    'Sale', 'SaleItem',
    'Client',
    'Expense', 'FinancialGoal',
    'CompanyConfig',
]
