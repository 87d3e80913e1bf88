"""
PROGRESS LEDGER - DOMAIN RULES

A project carries two append-only logs embedded in its document:
- progress_updates            (physical progress, percentage points)
- financial_progress_updates  (bill submitted amount vs. work value)

RULES:
- financial_progress is derived: round(bill_submitted_amount / work_value * 100), 0 when work_value is 0
- 0 <= bill_submitted_amount <= work_value
- Log entries are only ever appended; previous_* of an entry equals the value just before the append
- Rules never raise for business violations, they return an UpdateResult carrying a RejectionReason
- A rejected update leaves the aggregate untouched
"""

from dataclasses import dataclass, field
import copy
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, Iterable, Union
import logging

from core.financial_precision import (
    to_decimal, to_float, is_finite_number,
    safe_subtract, percentage_of, calculate_financial_progress
)

logger = logging.getLogger(__name__)

# Business constants
MAX_BACKWARD_CORRECTION = Decimal('5')
MAX_INCREASE_PER_UPDATE = Decimal('50')
COMPLETION_PERCENTAGE = Decimal('100')
MAX_REMARKS_LENGTH = 500
MAX_BILL_DESCRIPTION_LENGTH = 200

PROJECT_STATUSES = [
    "Submitted for Approval",
    "Resubmitted for Approval",
    "Rejected by AEE",
    "Rejected by CE",
    "Rejected by MD",
    "Ongoing",
    "Completed",
]
DEFAULT_PROJECT_STATUS = "Submitted for Approval"


class RejectionReason(str, Enum):
    UPDATES_DISABLED = "UpdatesDisabled"
    INVALID_VALUE = "InvalidValue"
    BACKWARD_PROGRESS_NOT_ALLOWED = "BackwardProgressNotAllowed"
    BACKWARD_FINANCIAL_PROGRESS_NOT_ALLOWED = "BackwardFinancialProgressNotAllowed"
    UNREALISTIC_JUMP = "UnrealisticJump"
    UNREALISTIC_FINANCIAL_JUMP = "UnrealisticFinancialJump"
    EXCEEDS_WORK_VALUE = "ExceedsWorkValue"
    COMPLETION_REQUIRES_DOCUMENTS = "CompletionRequiresDocuments"
    FINANCIAL_COMPLETION_REQUIRES_DOCUMENTS = "FinancialCompletionRequiresDocuments"
    FINAL_BILL_DETAILS_REQUIRED = "FinalBillDetailsRequired"
    AGGREGATE_NOT_FOUND = "AggregateNotFound"
    CONCURRENT_MODIFICATION = "ConcurrentModification"
    INTERNAL_FAILURE = "InternalFailure"


class LogKind(str, Enum):
    PHYSICAL = "physical"
    FINANCIAL = "financial"


# =========================================================================
# BOUNDED UPDATE CHECK (shared by physical and financial rules)
# =========================================================================

class BoundViolation(Enum):
    DECREASE_TOO_LARGE = "decrease_too_large"
    INCREASE_TOO_LARGE = "increase_too_large"
    EVIDENCE_REQUIRED = "evidence_required"


@dataclass(frozen=True)
class BoundedUpdatePolicy:
    """
    Limits for a single update of a tracked value.

    When scale is set, the delta is measured as a percentage of scale
    (financial progress: amount delta as % of work value). Otherwise the
    delta is measured in the value's own units (physical progress points).
    """
    max_decrease: Decimal
    max_increase: Decimal
    require_evidence_at_max: bool = True
    scale: Optional[Decimal] = None


PHYSICAL_PROGRESS_POLICY = BoundedUpdatePolicy(
    max_decrease=MAX_BACKWARD_CORRECTION,
    max_increase=MAX_INCREASE_PER_UPDATE,
)


def financial_progress_policy(work_value) -> BoundedUpdatePolicy:
    return BoundedUpdatePolicy(
        max_decrease=MAX_BACKWARD_CORRECTION,
        max_increase=MAX_INCREASE_PER_UPDATE,
        scale=to_decimal(work_value),
    )


def apply_bounded_update(
    current,
    proposed,
    policy: BoundedUpdatePolicy,
    reaches_max: bool,
    has_evidence: bool
) -> Optional[BoundViolation]:
    """
    Check one proposed move of a tracked value against a policy.

    Order: decrease tolerance, increase ceiling, evidence at max.
    Returns the first violation or None.
    """
    delta = safe_subtract(proposed, current)
    if policy.scale is not None:
        measured = percentage_of(delta, policy.scale)
    else:
        measured = delta

    if delta < 0 and -measured > policy.max_decrease:
        return BoundViolation.DECREASE_TOO_LARGE

    if measured > policy.max_increase:
        return BoundViolation.INCREASE_TOO_LARGE

    if policy.require_evidence_at_max and reaches_max and not has_evidence:
        return BoundViolation.EVIDENCE_REQUIRED

    return None


# =========================================================================
# LOG ENTRIES (immutable once created)
# =========================================================================

def _copy_documents(documents: Optional[Iterable[Dict[str, Any]]]) -> Tuple[Dict[str, Any], ...]:
    return tuple(dict(doc) for doc in (documents or []))


def _actor_document(actor: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    actor = actor or {}
    return {
        "user_id": actor.get("user_id"),
        "name": actor.get("name"),
        "role": actor.get("role"),
    }


@dataclass(frozen=True)
class ProgressLogEntry:
    previous_progress: float
    new_progress: float
    progress_difference: float
    remarks: str
    supporting_documents: Tuple[Dict[str, Any], ...]
    updated_by: Dict[str, Any]
    created_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {
            "previous_progress": self.previous_progress,
            "new_progress": self.new_progress,
            "progress_difference": self.progress_difference,
            "remarks": self.remarks,
            "supporting_documents": [dict(doc) for doc in self.supporting_documents],
            "updated_by": dict(self.updated_by),
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ProgressLogEntry":
        return cls(
            previous_progress=doc.get("previous_progress", 0),
            new_progress=doc.get("new_progress", 0),
            progress_difference=doc.get("progress_difference", 0),
            remarks=doc.get("remarks", ""),
            supporting_documents=_copy_documents(doc.get("supporting_documents")),
            updated_by=dict(doc.get("updated_by") or {}),
            created_at=doc.get("created_at"),
        )


@dataclass(frozen=True)
class FinancialProgressLogEntry:
    previous_financial_progress: int
    new_financial_progress: int
    progress_difference: int
    previous_bill_amount: float
    new_bill_amount: float
    amount_difference: float
    remarks: str
    bill_details: Dict[str, Any]
    supporting_documents: Tuple[Dict[str, Any], ...]
    updated_by: Dict[str, Any]
    created_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {
            "previous_financial_progress": self.previous_financial_progress,
            "new_financial_progress": self.new_financial_progress,
            "progress_difference": self.progress_difference,
            "previous_bill_amount": self.previous_bill_amount,
            "new_bill_amount": self.new_bill_amount,
            "amount_difference": self.amount_difference,
            "remarks": self.remarks,
            "bill_details": dict(self.bill_details),
            "supporting_documents": [dict(doc) for doc in self.supporting_documents],
            "updated_by": dict(self.updated_by),
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "FinancialProgressLogEntry":
        return cls(
            previous_financial_progress=doc.get("previous_financial_progress", 0),
            new_financial_progress=doc.get("new_financial_progress", 0),
            progress_difference=doc.get("progress_difference", 0),
            previous_bill_amount=doc.get("previous_bill_amount", 0),
            new_bill_amount=doc.get("new_bill_amount", 0),
            amount_difference=doc.get("amount_difference", 0),
            remarks=doc.get("remarks", ""),
            bill_details=dict(doc.get("bill_details") or {}),
            supporting_documents=_copy_documents(doc.get("supporting_documents")),
            updated_by=dict(doc.get("updated_by") or {}),
            created_at=doc.get("created_at"),
        )


LogEntry = Union[ProgressLogEntry, FinancialProgressLogEntry]


# =========================================================================
# PROJECT AGGREGATE
# =========================================================================

def progress_status_label(percentage) -> str:
    if not percentage:
        return "Not Started"
    if percentage < 25:
        return "Just Started"
    if percentage < 50:
        return "In Progress"
    if percentage < 75:
        return "Halfway Complete"
    if percentage < 100:
        return "Near Completion"
    return "Completed"


@dataclass
class ProjectAggregate:
    """
    Progress-tracking view of a project document.

    The two logs are owned by the aggregate and only grow through
    apply_progress_update / apply_financial_update.
    """
    project_id: str
    work_value: float
    bill_submitted_amount: float = 0.0
    physical_progress: float = 0.0
    id: Any = None
    bill_number: Optional[str] = None
    progress_updates_enabled: bool = True
    financial_progress_updates_enabled: bool = True
    last_progress_update: Optional[datetime] = None
    last_financial_progress_update: Optional[datetime] = None
    status: str = DEFAULT_PROJECT_STATUS
    ledger_version: int = 0
    _progress_updates: List[ProgressLogEntry] = field(default_factory=list, init=False, repr=False)
    _financial_progress_updates: List[FinancialProgressLogEntry] = field(default_factory=list, init=False, repr=False)

    @classmethod
    def create(cls, project_id: str, work_value, bill_submitted_amount=0, **extra) -> "ProjectAggregate":
        """New aggregate with physical progress 0. Raises ValueError on invalid amounts."""
        if not project_id:
            raise ValueError("project_id is required")
        if not is_finite_number(work_value) or work_value < 0:
            raise ValueError("work_value must be a non-negative number")
        if not is_finite_number(bill_submitted_amount) or bill_submitted_amount < 0:
            raise ValueError("bill_submitted_amount must be a non-negative number")
        if to_decimal(bill_submitted_amount) > to_decimal(work_value):
            raise ValueError("bill_submitted_amount cannot exceed work_value")
        status = extra.pop("status", DEFAULT_PROJECT_STATUS)
        if status not in PROJECT_STATUSES:
            raise ValueError(f"Invalid project status: {status}")
        return cls(
            project_id=project_id,
            work_value=float(work_value),
            bill_submitted_amount=float(bill_submitted_amount),
            physical_progress=0.0,
            status=status,
            **extra
        )

    # ----- derived values -----

    @property
    def financial_progress(self) -> int:
        return calculate_financial_progress(self.bill_submitted_amount, self.work_value)

    @property
    def remaining_budget(self) -> float:
        return to_float(safe_subtract(self.work_value, self.bill_submitted_amount))

    @property
    def progress_updates(self) -> Tuple[ProgressLogEntry, ...]:
        return tuple(self._progress_updates)

    @property
    def financial_progress_updates(self) -> Tuple[FinancialProgressLogEntry, ...]:
        return tuple(self._financial_progress_updates)

    def log(self, kind) -> Tuple[LogEntry, ...]:
        if LogKind(kind) is LogKind.PHYSICAL:
            return self.progress_updates
        return self.financial_progress_updates

    def progress_summary(self) -> Dict[str, Any]:
        return {
            "physical": {
                "percentage": self.physical_progress,
                "status": progress_status_label(self.physical_progress),
                "last_update": self.last_progress_update,
            },
            "financial": {
                "percentage": self.financial_progress,
                "status": progress_status_label(self.financial_progress),
                "last_update": self.last_financial_progress_update,
                "amount_submitted": self.bill_submitted_amount,
                "amount_remaining": self.remaining_budget,
            },
        }

    # ----- persistence shape -----

    def physical_fields(self) -> Dict[str, Any]:
        return {
            "physical_progress": self.physical_progress,
            "last_progress_update": self.last_progress_update,
        }

    def financial_fields(self) -> Dict[str, Any]:
        return {
            "bill_submitted_amount": self.bill_submitted_amount,
            "financial_progress": self.financial_progress,
            "bill_number": self.bill_number,
            "last_financial_progress_update": self.last_financial_progress_update,
        }

    def to_document(self) -> Dict[str, Any]:
        doc = {
            "project_id": self.project_id,
            "work_value": self.work_value,
            "status": self.status,
            "progress_updates_enabled": self.progress_updates_enabled,
            "financial_progress_updates_enabled": self.financial_progress_updates_enabled,
            "ledger_version": self.ledger_version,
            "progress_updates": [entry.to_document() for entry in self._progress_updates],
            "financial_progress_updates": [entry.to_document() for entry in self._financial_progress_updates],
        }
        doc.update(self.physical_fields())
        doc.update(self.financial_fields())
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ProjectAggregate":
        aggregate = cls(
            project_id=doc.get("project_id"),
            work_value=doc.get("work_value", 0) or 0,
            bill_submitted_amount=doc.get("bill_submitted_amount", 0) or 0,
            physical_progress=doc.get("physical_progress", 0) or 0,
            id=doc.get("_id"),
            bill_number=doc.get("bill_number"),
            progress_updates_enabled=doc.get("progress_updates_enabled", True),
            financial_progress_updates_enabled=doc.get("financial_progress_updates_enabled", True),
            last_progress_update=doc.get("last_progress_update"),
            last_financial_progress_update=doc.get("last_financial_progress_update"),
            status=doc.get("status", DEFAULT_PROJECT_STATUS),
            ledger_version=doc.get("ledger_version", 0),
        )
        aggregate._progress_updates = [
            ProgressLogEntry.from_document(entry) for entry in doc.get("progress_updates") or []
        ]
        aggregate._financial_progress_updates = [
            FinancialProgressLogEntry.from_document(entry)
            for entry in doc.get("financial_progress_updates") or []
        ]

        stored = doc.get("financial_progress")
        if stored is not None and stored != aggregate.financial_progress:
            logger.warning(
                f"Stored financial_progress drifted for project:{aggregate.project_id} "
                f"(stored={stored}, derived={aggregate.financial_progress}); using derived value"
            )
        return aggregate


# =========================================================================
# UPDATE RESULT
# =========================================================================

@dataclass
class UpdateResult:
    accepted: bool
    aggregate: Optional[ProjectAggregate] = None
    entries: Dict[str, LogEntry] = field(default_factory=dict)
    reason: Optional[RejectionReason] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def entry(self) -> Optional[LogEntry]:
        if not self.entries:
            return None
        return next(iter(self.entries.values()))

    @classmethod
    def accept(cls, aggregate: ProjectAggregate, kind: LogKind, entry: LogEntry, **detail) -> "UpdateResult":
        return cls(accepted=True, aggregate=aggregate, entries={kind.value: entry}, detail=detail)

    @classmethod
    def reject(cls, reason: RejectionReason, **detail) -> "UpdateResult":
        return cls(accepted=False, reason=reason, detail=detail)


# =========================================================================
# PHYSICAL PROGRESS RULE
# =========================================================================

def _validate_remarks(remarks: Optional[str]) -> Optional[UpdateResult]:
    if remarks is not None and len(remarks) > MAX_REMARKS_LENGTH:
        return UpdateResult.reject(
            RejectionReason.INVALID_VALUE,
            field="remarks",
            max_length=MAX_REMARKS_LENGTH
        )
    return None


def apply_progress_update(
    aggregate: ProjectAggregate,
    proposed_progress,
    remarks: Optional[str] = None,
    supporting_documents: Optional[Iterable[Dict[str, Any]]] = None,
    actor: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> UpdateResult:
    """
    Validate and apply a physical progress update.

    Validation order (first failure wins):
    1. progress updates enabled
    2. proposed value finite and within [0, 100]
    3. decrease of more than 5 points / increase of more than 50 points
    4. 100% requires at least one supporting document
    """
    if not aggregate.progress_updates_enabled:
        return UpdateResult.reject(RejectionReason.UPDATES_DISABLED, kind=LogKind.PHYSICAL.value)

    if not is_finite_number(proposed_progress) or not (0 <= proposed_progress <= 100):
        return UpdateResult.reject(
            RejectionReason.INVALID_VALUE,
            field="progress",
            provided=proposed_progress,
            valid_range="0-100"
        )

    invalid_remarks = _validate_remarks(remarks)
    if invalid_remarks:
        return invalid_remarks

    documents = _copy_documents(supporting_documents)
    current = aggregate.physical_progress

    violation = apply_bounded_update(
        current,
        proposed_progress,
        PHYSICAL_PROGRESS_POLICY,
        reaches_max=to_decimal(proposed_progress) == COMPLETION_PERCENTAGE,
        has_evidence=bool(documents)
    )
    if violation is BoundViolation.DECREASE_TOO_LARGE:
        return UpdateResult.reject(
            RejectionReason.BACKWARD_PROGRESS_NOT_ALLOWED,
            current_progress=current,
            attempted_progress=proposed_progress,
            max_allowed_decrease=float(MAX_BACKWARD_CORRECTION)
        )
    if violation is BoundViolation.INCREASE_TOO_LARGE:
        return UpdateResult.reject(
            RejectionReason.UNREALISTIC_JUMP,
            current_progress=current,
            attempted_progress=proposed_progress,
            max_allowed_increase=float(MAX_INCREASE_PER_UPDATE)
        )
    if violation is BoundViolation.EVIDENCE_REQUIRED:
        return UpdateResult.reject(
            RejectionReason.COMPLETION_REQUIRES_DOCUMENTS,
            progress=proposed_progress,
            files_uploaded=0
        )

    now = now or datetime.utcnow()
    entry = ProgressLogEntry(
        previous_progress=current,
        new_progress=float(proposed_progress),
        progress_difference=to_float(safe_subtract(proposed_progress, current)),
        remarks=remarks or "",
        supporting_documents=documents,
        updated_by=_actor_document(actor),
        created_at=now,
    )

    aggregate._progress_updates.append(entry)
    aggregate.physical_progress = entry.new_progress
    aggregate.last_progress_update = now

    return UpdateResult.accept(aggregate, LogKind.PHYSICAL, entry)


# =========================================================================
# FINANCIAL PROGRESS RULE
# =========================================================================

def normalize_bill_details(bill_details: Optional[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    bill_details = bill_details or {}
    return {
        "bill_number": (bill_details.get("bill_number") or "").strip(),
        "bill_date": bill_details.get("bill_date") or now,
        "bill_description": (bill_details.get("bill_description") or "").strip(),
    }


def apply_financial_update(
    aggregate: ProjectAggregate,
    proposed_bill_amount,
    remarks: Optional[str] = None,
    bill_details: Optional[Dict[str, Any]] = None,
    supporting_documents: Optional[Iterable[Dict[str, Any]]] = None,
    actor: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> UpdateResult:
    """
    Validate and apply a financial progress (bill submitted amount) update.

    Validation order (first failure wins):
    1. financial progress updates enabled
    2. proposed amount finite and >= 0
    3. proposed amount <= work value
    4. decrease of more than 5% of work value / increase of more than 50% of work value
    5. 100% financial progress requires supporting documents
    6. 100% financial progress requires a bill number
    """
    if not aggregate.financial_progress_updates_enabled:
        return UpdateResult.reject(RejectionReason.UPDATES_DISABLED, kind=LogKind.FINANCIAL.value)

    if not is_finite_number(proposed_bill_amount) or proposed_bill_amount < 0:
        return UpdateResult.reject(
            RejectionReason.INVALID_VALUE,
            field="new_bill_amount",
            provided=proposed_bill_amount,
            valid_range="0 or greater"
        )

    invalid_remarks = _validate_remarks(remarks)
    if invalid_remarks:
        return invalid_remarks

    description = (bill_details or {}).get("bill_description") or ""
    if len(description) > MAX_BILL_DESCRIPTION_LENGTH:
        return UpdateResult.reject(
            RejectionReason.INVALID_VALUE,
            field="bill_description",
            max_length=MAX_BILL_DESCRIPTION_LENGTH
        )

    work_value = aggregate.work_value
    if to_decimal(proposed_bill_amount) > to_decimal(work_value):
        return UpdateResult.reject(
            RejectionReason.EXCEEDS_WORK_VALUE,
            work_value=work_value,
            attempted_amount=proposed_bill_amount
        )

    documents = _copy_documents(supporting_documents)
    current = aggregate.bill_submitted_amount
    new_financial_progress = calculate_financial_progress(proposed_bill_amount, work_value)

    violation = apply_bounded_update(
        current,
        proposed_bill_amount,
        financial_progress_policy(work_value),
        reaches_max=new_financial_progress == 100,
        has_evidence=bool(documents)
    )
    if violation is BoundViolation.DECREASE_TOO_LARGE:
        return UpdateResult.reject(
            RejectionReason.BACKWARD_FINANCIAL_PROGRESS_NOT_ALLOWED,
            current_amount=current,
            attempted_amount=proposed_bill_amount,
            max_allowed_decrease_percentage_of_work_value=float(MAX_BACKWARD_CORRECTION)
        )
    if violation is BoundViolation.INCREASE_TOO_LARGE:
        return UpdateResult.reject(
            RejectionReason.UNREALISTIC_FINANCIAL_JUMP,
            current_amount=current,
            attempted_amount=proposed_bill_amount,
            max_allowed_increase_percentage_of_work_value=float(MAX_INCREASE_PER_UPDATE)
        )
    if violation is BoundViolation.EVIDENCE_REQUIRED:
        return UpdateResult.reject(
            RejectionReason.FINANCIAL_COMPLETION_REQUIRES_DOCUMENTS,
            financial_progress=new_financial_progress,
            files_uploaded=0
        )

    now = now or datetime.utcnow()
    details = normalize_bill_details(bill_details, now)
    if new_financial_progress == 100 and not details["bill_number"]:
        return UpdateResult.reject(
            RejectionReason.FINAL_BILL_DETAILS_REQUIRED,
            financial_progress=new_financial_progress,
            required_field="bill_number"
        )

    previous_financial_progress = aggregate.financial_progress
    entry = FinancialProgressLogEntry(
        previous_financial_progress=previous_financial_progress,
        new_financial_progress=new_financial_progress,
        progress_difference=new_financial_progress - previous_financial_progress,
        previous_bill_amount=current,
        new_bill_amount=float(proposed_bill_amount),
        amount_difference=to_float(safe_subtract(proposed_bill_amount, current)),
        remarks=remarks or "",
        bill_details=details,
        supporting_documents=documents,
        updated_by=_actor_document(actor),
        created_at=now,
    )

    aggregate._financial_progress_updates.append(entry)
    aggregate.bill_submitted_amount = entry.new_bill_amount
    if details["bill_number"]:
        aggregate.bill_number = details["bill_number"]
    aggregate.last_financial_progress_update = now

    return UpdateResult.accept(aggregate, LogKind.FINANCIAL, entry)


# =========================================================================
# ADMINISTRATIVE TOGGLE / STATUS
# =========================================================================

def set_updates_enabled(aggregate: ProjectAggregate, kind, enabled: bool) -> ProjectAggregate:
    """Unconditional gate change; authorization is the caller's concern"""
    if not isinstance(enabled, bool):
        raise ValueError("enabled must be a boolean")
    if LogKind(kind) is LogKind.PHYSICAL:
        aggregate.progress_updates_enabled = enabled
    else:
        aggregate.financial_progress_updates_enabled = enabled
    return aggregate


def complete_if_ongoing(
    aggregate: ProjectAggregate,
    actor: Optional[Dict[str, Any]],
    now: Optional[datetime] = None
) -> Optional[Dict[str, Any]]:
    """
    Move an Ongoing project to Completed once physical progress reaches 100.
    Returns the status history entry, or None when no change applies.
    """
    if to_decimal(aggregate.physical_progress) != COMPLETION_PERCENTAGE or aggregate.status != "Ongoing":
        return None

    now = now or datetime.utcnow()
    history_entry = {
        "previous_status": aggregate.status,
        "new_status": "Completed",
        "changed_by": _actor_document(actor),
        "remarks": "Project automatically marked as completed due to 100% progress achievement",
        "created_at": now,
    }
    aggregate.status = "Completed"
    return history_entry


# =========================================================================
# COMBINED UPDATE (physical and financial together, all or nothing)
# =========================================================================

def split_supporting_documents(documents: Optional[Iterable[Dict[str, Any]]]) -> Tuple[list, list]:
    """Images and "progress" files go to the physical entry; documents and "bill" files to the financial one"""
    physical, financial = [], []
    for doc in documents or []:
        name = doc.get("original_name") or ""
        if doc.get("category") == "image" or "progress" in name:
            physical.append(doc)
        if doc.get("category") == "document" or "bill" in name:
            financial.append(doc)
    return physical, financial


def apply_combined_update(
    aggregate: ProjectAggregate,
    proposed_progress=None,
    proposed_bill_amount=None,
    remarks: Optional[str] = None,
    bill_details: Optional[Dict[str, Any]] = None,
    supporting_documents: Optional[Iterable[Dict[str, Any]]] = None,
    actor: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> UpdateResult:
    """
    Apply a physical and/or a financial update as one unit.
    Either every requested update is applied or the aggregate is left untouched.
    """
    if proposed_progress is None and proposed_bill_amount is None:
        return UpdateResult.reject(
            RejectionReason.INVALID_VALUE,
            field="progress,new_bill_amount",
            message="At least one of progress or new_bill_amount is required"
        )

    now = now or datetime.utcnow()
    physical_documents, financial_documents = split_supporting_documents(supporting_documents)
    working = copy.deepcopy(aggregate)
    entries: Dict[str, LogEntry] = {}

    if proposed_progress is not None:
        result = apply_progress_update(
            working, proposed_progress, remarks, physical_documents, actor, now
        )
        if not result.accepted:
            return result
        entries.update(result.entries)

    if proposed_bill_amount is not None:
        result = apply_financial_update(
            working, proposed_bill_amount, remarks, bill_details, financial_documents, actor, now
        )
        if not result.accepted:
            return result
        entries.update(result.entries)

    aggregate.__dict__.update(working.__dict__)
    return UpdateResult(accepted=True, aggregate=aggregate, entries=entries)
