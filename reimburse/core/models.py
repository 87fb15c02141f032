"""Pydantic models for the reimbursement forms service.

Wire payloads use camelCase keys (``formId``, ``newFiles``, ``base64Content``)
while Python code uses snake_case attributes. Input models validate submitted
forms before anything is written; read models describe the hydrated
form -> transactions -> receipts graph; result models are the
``{success, error, details}`` envelopes returned by every operation.
"""

import datetime as dt
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from reimburse.core.dates import to_storage_date
from reimburse.core.errors import ActionError, ErrorCode
from reimburse.core.utils import decode_base64_content, split_data_url

ACCOUNT_LINES = ("General Fund", "Missions", "Church Plant")
DEPARTMENTS = ("Worship", "Youth", "Children", "Admin")
DEFAULT_MIN_BASE64_LENGTH = 16

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    """Base model with camelCase aliases that also accepts snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Input models ---


class ReceiptFile(CamelModel):
    """A newly attached file, already encoded by the presentation layer."""

    name: str = ""
    type: str = ""
    base64_content: str = ""

    @model_validator(mode="after")
    def check_content(self, info: ValidationInfo) -> "ReceiptFile":
        """Reject files with missing metadata or content that cannot be encoded file data."""
        label = self.name.strip() or "unnamed file"
        if not self.name.strip():
            msg = "Receipt file is missing a name"
            raise ValueError(msg)
        if not self.type.strip():
            msg = f"Receipt file '{label}' is missing its type"
            raise ValueError(msg)
        if not self.base64_content.strip():
            msg = f"Receipt file '{label}' is missing base64Content"
            raise ValueError(msg)
        min_length = (info.context or {}).get("min_base64_length", DEFAULT_MIN_BASE64_LENGTH)
        _, payload = split_data_url(self.base64_content.strip())
        if len(payload) < min_length:
            msg = f"Receipt file '{label}' base64Content is too short to be encoded file content"
            raise ValueError(msg)
        try:
            decode_base64_content(self.base64_content)
        except ValueError as exc:
            msg = f"Receipt file '{label}' base64Content is not valid base64"
            raise ValueError(msg) from exc
        return self


class TransactionFields(CamelModel):
    """Scalar fields of a transaction; the date is normalized to its UTC calendar day."""

    date: dt.date
    account_line: str
    department: str
    place_vendor: NonEmptyStr
    description: NonEmptyStr
    amount: float = Field(gt=0, allow_inf_nan=False)

    @field_validator("date", mode="before")
    @classmethod
    def normalize_date(cls, value: Any) -> dt.date:
        """Anchor datetimes and ISO strings to their UTC calendar date."""
        if value is None or value == "":
            msg = "Date is required"
            raise ValueError(msg)
        try:
            return to_storage_date(value)
        except TypeError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("account_line")
    @classmethod
    def check_account_line(cls, value: str) -> str:
        """Account line must be one of the known lines."""
        if value not in ACCOUNT_LINES:
            msg = f"Account line must be one of: {', '.join(ACCOUNT_LINES)}"
            raise ValueError(msg)
        return value

    @field_validator("department")
    @classmethod
    def check_department(cls, value: str) -> str:
        """Department must be one of the known departments."""
        if value not in DEPARTMENTS:
            msg = f"Department must be one of: {', '.join(DEPARTMENTS)}"
            raise ValueError(msg)
        return value

    def to_columns(self) -> dict[str, Any]:
        """Column values for a ``transactions`` row."""
        return {
            "date": self.date,
            "account_line": self.account_line,
            "department": self.department,
            "place_vendor": self.place_vendor,
            "description": self.description,
            "amount": float(self.amount),
        }


class NewTransaction(BaseModel):
    """A submitted transaction that has not been persisted yet."""

    kind: Literal["new"] = "new"
    row: TransactionFields
    new_files: list[ReceiptFile] = []


class ExistingTransaction(BaseModel):
    """A submitted transaction that updates a stored row of the same form."""

    kind: Literal["existing"] = "existing"
    id: int
    row: TransactionFields
    new_files: list[ReceiptFile] = []


TransactionChange = Annotated[NewTransaction | ExistingTransaction, Field(discriminator="kind")]


class TransactionInput(TransactionFields):
    """A transaction as sent by clients: ``id`` is absent or non-positive for rows not yet stored."""

    id: int | None = None
    new_files: list[ReceiptFile] = []

    @field_validator("new_files", mode="before")
    @classmethod
    def default_new_files(cls, value: Any) -> Any:
        """Treat a null file list as empty."""
        return [] if value is None else value

    def classify(self, known_ids: set[int]) -> NewTransaction | ExistingTransaction:
        """Decide whether this row updates a stored transaction or inserts a new one."""
        row = TransactionFields(**{name: getattr(self, name) for name in TransactionFields.model_fields})
        if self.id is not None and self.id > 0 and self.id in known_ids:
            return ExistingTransaction(id=self.id, row=row, new_files=self.new_files)
        return NewTransaction(row=row, new_files=self.new_files)


class FormFields(CamelModel):
    """Top-level scalar fields of a form."""

    user_id: str | None = None
    form_type: NonEmptyStr = "REIMBURSEMENT"
    submitter_email: EmailStr
    submitter_name: NonEmptyStr
    reimbursed_name: NonEmptyStr
    reimbursed_email: EmailStr

    def to_columns(self, *, include_owner: bool = True) -> dict[str, Any]:
        """Column values for a ``forms`` row; a missing user id is left out."""
        columns = {
            "form_type": self.form_type,
            "submitter_email": str(self.submitter_email),
            "submitter_name": self.submitter_name,
            "reimbursed_name": self.reimbursed_name,
            "reimbursed_email": str(self.reimbursed_email),
        }
        if include_owner and self.user_id is not None:
            columns["user_id"] = self.user_id
        return columns


class FormCreate(FormFields):
    """Payload creating a form together with its transactions."""

    transactions: list[TransactionInput]

    @field_validator("transactions")
    @classmethod
    def require_transactions(cls, value: list[TransactionInput]) -> list[TransactionInput]:
        """A form needs at least one transaction."""
        if not value:
            msg = "At least one transaction is required"
            raise ValueError(msg)
        return value


class FormUpdate(FormFields):
    """Payload saving a form: new/changed transactions plus the ids to delete."""

    transactions: list[TransactionInput] = []
    deleted_transaction_ids: list[int] = []

    @field_validator("transactions", "deleted_transaction_ids", mode="before")
    @classmethod
    def default_lists(cls, value: Any) -> Any:
        """Treat null lists as empty."""
        return [] if value is None else value


# --- Read models ---


class FormRead(CamelModel):
    """A stored form."""

    id: int
    user_id: str
    form_type: str
    submitter_email: str
    submitter_name: str
    reimbursed_name: str
    reimbursed_email: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class ReceiptRead(CamelModel):
    """A stored receipt."""

    id: int
    transaction_id: int
    name: str
    file_type: str
    base64_content: str
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class TransactionRead(CamelModel):
    """A stored transaction; its key is exposed as ``transactionId``."""

    transaction_id: int
    form_id: int
    date: dt.date
    account_line: str
    department: str
    place_vendor: str
    description: str | None = None
    amount: float
    receipts: list[ReceiptRead] = []


class FormGraph(CamelModel):
    """A form with its transactions and their receipts."""

    form: FormRead
    transactions: list[TransactionRead] = []

    @property
    def total(self) -> float:
        """Sum of all transaction amounts."""
        return sum(tx.amount for tx in self.transactions)


class CurrentUser(CamelModel):
    """Identity supplied by the external auth provider."""

    id: str
    email: str | None = None
    first_name: str | None = None


# --- Result envelopes ---


class ActionResult(CamelModel):
    """Outcome of an operation: ``success`` plus an error message and diagnostics on failure."""

    success: bool
    error: str | None = None
    code: ErrorCode | None = None
    details: Any = None

    @classmethod
    def from_error(cls, err: ActionError) -> "ActionResult":
        """Build a failure envelope from an ActionError."""
        return cls(success=False, error=err.message, code=err.code, details=err.details)


class CreateFormResult(ActionResult):
    """Outcome of creating a form."""

    form_id: int | None = None
    transaction_ids: list[int] = []


class UpdateFormResult(ActionResult):
    """Outcome of saving a form: the authoritative post-write graph on success."""

    form: FormRead | None = None
    transactions: list[TransactionRead] = []


class PdfResult(ActionResult):
    """Outcome of rendering a form as PDF."""

    data: bytes | None = Field(default=None, exclude=True)
