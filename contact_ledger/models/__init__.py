from contact_ledger.models.account import ProfessionalAccount
from contact_ledger.models.allocation import Allocation, AllocationStatus, UnlockMode
from contact_ledger.models.audit_log import AuditLog
from contact_ledger.models.coin_transaction import CoinTransaction, TransactionReason
from contact_ledger.models.pricing_settings import PricingSettings
from contact_ledger.models.refund_request import RefundDecision, RefundKind, RefundRequest, RefundStatus
from contact_ledger.models.service_request import RequestStatus, ServiceRequest

__all__ = [
    "Allocation",
    "AllocationStatus",
    "AuditLog",
    "CoinTransaction",
    "PricingSettings",
    "ProfessionalAccount",
    "RefundDecision",
    "RefundKind",
    "RefundRequest",
    "RefundStatus",
    "RequestStatus",
    "ServiceRequest",
    "TransactionReason",
    "UnlockMode",
]
