"""
Enumerations shared by the database layer, the API and the scheduled jobs.
"""

from __future__ import annotations

from enum import Enum


class AppRole(str, Enum):
    ADMIN = "admin"
    ESTIMATION = "estimation"
    DESIGNER = "designer"
    OPERATIONS = "operations"
    TECHNICAL_HEAD = "technical_head"


class TaskStatus(str, Enum):
    TODO = "todo"
    SUPPLIER_QUOTES = "supplier_quotes"
    ADMIN_APPROVAL = "admin_approval"
    QUOTATION_BILL = "quotation_bill"
    PRODUCTION = "production"
    FINAL_INVOICE = "final_invoice"
    MOCKUP_PENDING = "mockup_pending"
    PRODUCTION_PENDING = "production_pending"
    WITH_CLIENT = "with_client"
    APPROVAL = "approval"
    DELIVERY = "delivery"
    DONE = "done"
    CLIENT_APPROVAL = "client_approval"
    ADMIN_COST_APPROVAL = "admin_cost_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEVELOPING = "developing"
    TESTING = "testing"
    UNDER_REVIEW = "under_review"
    DEPLOYED = "deployed"
    TRIAL_AND_ERROR = "trial_and_error"
    MOCKUP = "mockup"
    PRODUCTION_FILE = "production_file"
    PENDING_INVOICES = "pending_invoices"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskType(str, Enum):
    QUOTATION = "quotation"
    INVOICE = "invoice"
    GENERAL = "general"
    PRODUCTION = "production"
    DESIGN = "design"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SyncOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    SOFT_DELETE = "soft_delete"


# Quotation stages watched by the escalation job and the least-busy lookup.
ACTIVE_QUOTATION_STATUSES = (
    TaskStatus.TODO,
    TaskStatus.SUPPLIER_QUOTES,
    TaskStatus.CLIENT_APPROVAL,
    TaskStatus.ADMIN_APPROVAL,
)

# Default per-stage limits: (time_limit_hours, warning_threshold_hours).
DEFAULT_STAGE_LIMITS = {
    TaskStatus.TODO: (2, 1),
    TaskStatus.SUPPLIER_QUOTES: (4, 3),
    TaskStatus.CLIENT_APPROVAL: (3, 2),
    TaskStatus.ADMIN_APPROVAL: (2, 1),
}
