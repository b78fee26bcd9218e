from .enums import (
    TransactionType, TransactionCategory, TransactionStatus, SessionStatus, LiquidationStatus,
)
from .auth import User
from .clinic import Patient, Professional, MedicalService, ServiceRequest, ServiceRequestDetail
from .cash import CashRegisterSession, Transaction
from .commissions import CommissionLiquidation, CommissionLiquidationDetail
from .audit import AuditLog

__all__ = [
    'TransactionType', 'TransactionCategory', 'TransactionStatus', 'SessionStatus', 'LiquidationStatus',
    'User',
    'Patient', 'Professional', 'MedicalService', 'ServiceRequest', 'ServiceRequestDetail',
    'CashRegisterSession', 'Transaction',
    'CommissionLiquidation', 'CommissionLiquidationDetail',
    'AuditLog',
]
