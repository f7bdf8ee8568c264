"""
Core Data Models for Smart Prise

These models define the strict schemas for every entity in a household ledger.
They are designed to:
1. Enforce the ledger invariants at construction time
2. Be immutable - a change is a new value replacing the old one at its id
3. Serialize to the camelCase documents the remote store holds

DESIGN DECISION: We use Pydantic v2 frozen models.
Raw form input (numeric strings, blank dates) is parsed and validated
by the new_* constructors before it ever reaches the engine.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    TypeAdapter,
    computed_field,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from smart_prise.errors import ValidationError


# =============================================================================
# CONSTANTS
# =============================================================================

# Recipient sentinel for messages visible to every user
BROADCAST_RECIPIENT = "all"

# Fixed id of the bootstrap administrator, so concurrent seeding converges
BOOTSTRAP_ADMIN_ID = "admin"

DEFAULT_EXPENSE_CATEGORIES = [
    "المياه",
    "الغاز",
    "الكهرباء",
    "الانترنت المنزلي",
    "الخط الارضي",
    "جمعيات",
    "اقساط بنك",
]

COMMITMENT_TYPES = [
    "جمعيات",
    "اقساط بنك",
    "التزامات اخرى",
]

# Monetary amounts are Decimals in Python and plain numbers in documents
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


def new_id() -> str:
    """Generate a fresh entity identifier."""
    return uuid4().hex


class Theme(str, Enum):
    """Display theme stored alongside the ledger."""
    LIGHT = "light"
    DARK = "dark"


# =============================================================================
# BASE MODEL
# =============================================================================

class LedgerModel(BaseModel):
    """
    Base for all ledger entities.

    Frozen: there is no field assignment. Use evolve() to get a
    re-validated copy with some fields changed.
    """
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    def evolve(self, **changes: Any):
        """Return a new, fully validated value with `changes` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)

    def to_document(self) -> dict:
        """Serialize to the shape stored in the remote document store."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# ENTITIES
# =============================================================================

class User(LedgerModel):
    """
    An account holder.

    The password is stored as entered; credential encryption
    is outside this system.
    """

    id: str = Field(default_factory=new_id, min_length=1)
    username: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, also used to log in"
    )
    password: str = Field(
        ...,
        min_length=1,
        description="Secret credential"
    )
    is_admin: bool = Field(
        default=False,
        description="Can create and delete other accounts"
    )


class Expense(LedgerModel):
    """A recurring monthly expense owned by one user."""

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    value: Money = Field(
        ...,
        ge=0,
        description="Amount due"
    )
    due_date: date = Field(
        ...,
        description="Payment due date"
    )
    paid: bool = False
    owner_id: str = Field(..., min_length=1, alias="userId")


class Commitment(LedgerModel):
    """
    A long-running obligation paid off in equal installments.

    remaining_amount and completed are derived from total_value and
    paid_amount, so every value satisfies remaining = total - paid and
    completed <=> remaining <= 0 by construction.
    """

    id: str = Field(default_factory=new_id, min_length=1)
    type: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Commitment type label (savings circle, bank loan...)"
    )
    total_value: Money = Field(..., ge=0)
    installments_count: int = Field(..., gt=0)
    paid_amount: Money = Field(default=Decimal("0"), ge=0)
    duration: str = Field(
        default="",
        max_length=100,
        description="Human-readable duration, e.g. '12 months'"
    )
    due_date: Optional[date] = Field(
        default=None,
        description="Next installment due date"
    )
    owner_id: str = Field(..., min_length=1, alias="userId")
    description: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode='after')
    def validate_paid_within_total(self) -> 'Commitment':
        if self.paid_amount > self.total_value:
            raise ValueError("Paid amount cannot exceed total value")
        return self

    @computed_field(alias="remainingAmount")
    @property
    def remaining_amount(self) -> Money:
        return self.total_value - self.paid_amount

    @computed_field(alias="completed")
    @property
    def completed(self) -> bool:
        return self.remaining_amount <= 0

    @property
    def installment_step(self) -> Decimal:
        """Fixed amount paid by one installment."""
        return self.total_value / self.installments_count


class MonthlyRecord(LedgerModel):
    """
    A point-in-time snapshot of one archived month.

    Never edited after creation.
    """

    id: str = Field(default_factory=new_id, min_length=1)
    month_name: str = Field(
        ...,
        min_length=1,
        description="Localized 'month year' label"
    )
    salary: Money = Field(..., ge=0)
    total_expenses: Money = Field(..., ge=0)
    expenses: list[Expense] = Field(default_factory=list)
    archived_at: datetime = Field(..., alias="date")
    owner_id: str = Field(..., min_length=1, alias="userId")


class ChatMessage(LedgerModel):
    """
    A broadcast or direct message.

    The id is the key the store generated on push; timestamp is the
    server-assigned ordering value.
    """

    id: str = Field(default="")
    sender_id: str = Field(..., min_length=1)
    sender_name: str = Field(..., min_length=1)
    recipient: str = Field(
        ...,
        min_length=1,
        description="'all' for broadcast, otherwise a user id"
    )
    text: str = Field(..., min_length=1, max_length=2000)
    time: str = Field(
        default="",
        description="Human-readable send time"
    )
    timestamp: int = Field(default=0, ge=0)

    @property
    def is_broadcast(self) -> bool:
        return self.recipient == BROADCAST_RECIPIENT


class LedgerDocument(LedgerModel):
    """
    Everything stored at data/{userId}.

    History is ordered most recent first.
    """

    salary: Money = Field(default=Decimal("0"), ge=0)
    expenses: list[Expense] = Field(default_factory=list)
    commitments: list[Commitment] = Field(default_factory=list)
    history: list[MonthlyRecord] = Field(default_factory=list)
    theme: Theme = Theme.LIGHT

    def to_local_blob(self) -> dict:
        """The subset kept by the offline file fallback."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            include={"salary", "expenses", "commitments", "history"},
        )


# =============================================================================
# CONSTRUCTORS - parse and validate raw input
# =============================================================================

_SALARY = TypeAdapter(Annotated[Decimal, Field(ge=0)])


def _describe(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


def _build(model_cls: type[LedgerModel], **fields: Any):
    """Validate fields into model_cls, converting pydantic errors to ours."""
    try:
        return model_cls.model_validate(fields)
    except PydanticValidationError as e:
        issues = [_describe(err) for err in e.errors()]
        raise ValidationError(
            f"Invalid {model_cls.__name__}: {issues[0]}",
            issues,
        ) from e


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_salary(raw: Any) -> Decimal:
    """Parse a salary figure from form input."""
    if _blank(raw):
        raise ValidationError("Salary is required")
    try:
        return _SALARY.validate_python(raw)
    except PydanticValidationError as e:
        issues = [_describe(err) for err in e.errors()]
        raise ValidationError(f"Invalid salary: {issues[0]}", issues) from e


def new_user(
    username: str,
    password: str,
    is_admin: bool = False,
    user_id: Optional[str] = None,
) -> User:
    fields = {"username": username, "password": password, "is_admin": is_admin}
    if user_id:
        fields["id"] = user_id
    return _build(User, **fields)


def new_expense(
    owner_id: str,
    value: Any,
    category: str,
    name: Optional[str] = None,
    due_date: Any = None,
    today: Optional[date] = None,
) -> Expense:
    """
    Create an expense from form input.

    The name defaults to the category label and the due date to today,
    as the entry form does.
    """
    if _blank(value):
        raise ValidationError("Expense value is required")
    if _blank(category):
        raise ValidationError("Expense category is required")
    return _build(
        Expense,
        owner_id=owner_id,
        value=value,
        category=category,
        name=name if not _blank(name) else category,
        due_date=due_date if not _blank(due_date) else (today or date.today()),
    )


def new_commitment(
    owner_id: str,
    commitment_type: str,
    total_value: Any,
    installments_count: Any,
    duration: str = "",
    due_date: Any = None,
    description: Optional[str] = None,
) -> Commitment:
    """Create a fresh, unpaid commitment from form input."""
    if _blank(total_value):
        raise ValidationError("Commitment total value is required")
    if _blank(installments_count):
        raise ValidationError("Installment count is required")
    return _build(
        Commitment,
        owner_id=owner_id,
        type=commitment_type,
        total_value=total_value,
        installments_count=installments_count,
        duration=duration or "",
        due_date=due_date if not _blank(due_date) else None,
        description=description if not _blank(description) else None,
    )


def new_message(
    sender: User,
    recipient: str,
    text: str,
    now: Optional[datetime] = None,
) -> ChatMessage:
    """Create an outgoing message; id and timestamp are assigned by the store."""
    if _blank(text):
        raise ValidationError("Message text is required")
    now = now or datetime.now()
    return _build(
        ChatMessage,
        sender_id=sender.id,
        sender_name=sender.username,
        recipient=recipient or BROADCAST_RECIPIENT,
        text=text,
        time=now.strftime("%Y-%m-%d %H:%M"),
    )
