import enum


class UserRole(str, enum.Enum):
    SUPPORT_AGENT = "support_agent"
    RISK_ANALYST = "risk_analyst"
    FINANCE_OPS = "finance_ops"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    VIEW_TRANSACTIONS = "view_transactions"
    VIEW_MASKED_DATA = "view_masked_data"
    VIEW_FULL_DATA = "view_full_data"
    CREATE_DISPUTE = "create_dispute"
    EDIT_DISPUTE = "edit_dispute"
    DELETE_DISPUTE = "delete_dispute"
    ASSIGN_DISPUTE = "assign_dispute"
    REVIEW_DISPUTE = "review_dispute"
    APPROVE_DISPUTE = "approve_dispute"
    REJECT_DISPUTE = "reject_dispute"
    SETTLE_DISPUTE = "settle_dispute"
    ADJUST_AMOUNT = "adjust_amount"
    VIEW_AUDIT_LOG = "view_audit_log"
    EXPORT_DATA = "export_data"
    MANAGE_USERS = "manage_users"


class TransactionStatus(str, enum.Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class TransactionType(str, enum.Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    TRANSFER = "transfer"
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"


class DisputeStatus(str, enum.Enum):
    DRAFT = "draft"
    CREATED = "created"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    SETTLED = "settled"


class DisputeReason(str, enum.Enum):
    UNAUTHORIZED_TRANSACTION = "unauthorized_transaction"
    DUPLICATE_CHARGE = "duplicate_charge"
    PRODUCT_NOT_RECEIVED = "product_not_received"
    PRODUCT_NOT_AS_DESCRIBED = "product_not_as_described"
    CANCELLED_SUBSCRIPTION = "cancelled_subscription"
    INCORRECT_AMOUNT = "incorrect_amount"
    FRAUDULENT_ACTIVITY = "fraudulent_activity"
    OTHER = "other"


class DisputePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EvidenceType(str, enum.Enum):
    DOCUMENT = "document"
    SCREENSHOT = "screenshot"
    EMAIL = "email"
    OTHER = "other"


class AuditAction(str, enum.Enum):
    DISPUTE_CREATED = "dispute_created"
    DISPUTE_UPDATED = "dispute_updated"
    DISPUTE_SUBMITTED = "dispute_submitted"
    DISPUTE_ASSIGNED = "dispute_assigned"
    DISPUTE_DELETED = "dispute_deleted"
    STATUS_CHANGED = "status_changed"
    EVIDENCE_ADDED = "evidence_added"
    EVIDENCE_REMOVED = "evidence_removed"
    COMMENT_ADDED = "comment_added"
    DISPUTE_APPROVED = "dispute_approved"
    DISPUTE_REJECTED = "dispute_rejected"
    DISPUTE_SETTLED = "dispute_settled"
    AMOUNT_ADJUSTED = "amount_adjusted"
    CONFLICT_RESOLVED = "conflict_resolved"
    DRAFT_CREATED = "draft_created"
    DRAFT_SAVED = "draft_saved"
    DRAFT_RESUMED = "draft_resumed"
    DRAFT_DELETED = "draft_deleted"


class RealtimeEventType(str, enum.Enum):
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    UPDATED = "updated"
    CONFLICT_DETECTED = "conflict_detected"


class ConflictResolution(str, enum.Enum):
    KEEP_LOCAL = "keep_local"
    USE_SERVER = "use_server"


class DraftStatus(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"
