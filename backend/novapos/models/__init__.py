from .inventory import Product, StockAdjustment, AdjustmentType
from .sales import Sale, SaleLine, PaymentMethod, SaleStatus
from .audit import AuditEntry
from .staff import Branch, Employee, EmployeeStatus
from .documents import Expense, DocumentSequence
from .settings import StoreSetting, ExpenseCategory

__all__ = [
    'Product', 'StockAdjustment', 'AdjustmentType',
    'Sale', 'SaleLine', 'PaymentMethod', 'SaleStatus',
    'AuditEntry',
    'Branch', 'Employee', 'EmployeeStatus',
    'Expense', 'DocumentSequence',
    'StoreSetting', 'ExpenseCategory',
]
