from .customers import Customer
from .loans import LoanRecord
from .stock import StockItem
from .audit import LoanEditAudit, ArchivedLoan, ArchivedCustomer
from .auth import User

__all__ = [
    'Customer',
    'LoanRecord',
    'StockItem',
    'LoanEditAudit', 'ArchivedLoan', 'ArchivedCustomer',
    'User',
]
