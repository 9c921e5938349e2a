from .auth import User, SessionToken
from .inventory import Product
from .customers import Customer
from .billing import Bill, BillLine, BillPayment, Payment
from .expenses import Expense
from .documents import DocumentSequence, AuditEvent

__all__ = [
    'User', 'SessionToken',
    'Product',
    'Customer',
    'Bill', 'BillLine', 'BillPayment', 'Payment',
    'Expense',
    'DocumentSequence', 'AuditEvent',
]
