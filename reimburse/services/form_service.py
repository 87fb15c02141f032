"""Data-access operations over forms, transactions and receipts.

Every mutating operation validates its whole payload before writing, runs its
writes in a single database transaction and returns a result envelope instead
of raising: validation, not-found and authorization problems as well as store
failures all come back as ``success=False`` with an error message.
"""

import functools
from collections import defaultdict
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reimburse.core.db import Form, Receipt, Transaction
from reimburse.core.errors import ActionError, ErrorCode, persistence_error, validation_error
from reimburse.core.models import (
    ActionResult,
    CreateFormResult,
    CurrentUser,
    ExistingTransaction,
    FormCreate,
    FormGraph,
    FormRead,
    FormUpdate,
    ReceiptFile,
    ReceiptRead,
    TransactionFields,
    TransactionRead,
    UpdateFormResult,
)
from reimburse.core.settings import Settings, get_settings
from reimburse.core.utils import get_logger, utcnow
from reimburse.services.cache import revalidate_path

logger = get_logger("reimburse.forms")

DASHBOARD_PATH = "/dashboard"


def form_path(form_id: int) -> str:
    """Route path of a form's detail page."""
    return f"/forms/{form_id}"


def action_boundary(result_cls: type[ActionResult], failure_message: str) -> Callable:
    """Turn errors raised inside an operation into a failure envelope of ``result_cls``.

    The wrapped function receives the session as its first argument; it is rolled
    back before the envelope is returned.
    """

    def decorator(func: Callable[..., ActionResult]) -> Callable[..., ActionResult]:
        @functools.wraps(func)
        def wrapper(session: Session, *args: Any, **kwargs: Any) -> ActionResult:
            try:
                return func(session, *args, **kwargs)
            except ActionError as err:
                session.rollback()
                logger.warning(f"{func.__name__} rejected: {err.message}")
                return result_cls.from_error(err)
            except ValidationError as exc:
                session.rollback()
                err = validation_error(exc)
                logger.warning(f"{func.__name__} rejected: {err.message}")
                return result_cls.from_error(err)
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception(f"{func.__name__} failed: {failure_message}")
                return result_cls.from_error(persistence_error(exc, failure_message))

        return wrapper

    return decorator


def _validation_context(settings: Settings) -> dict[str, Any]:
    return {"min_base64_length": settings.min_base64_length}


def _as_payload(payload: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    """Top-level payload keys in their camelCase wire form."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(by_alias=True)
    data = {}
    for key, value in payload.items():
        if "_" in key:
            head, *rest = key.split("_")
            key = head + "".join(part.title() for part in rest)
        data[key] = value
    return data


def _with_identity(data: dict[str, Any], user: CurrentUser | None) -> dict[str, Any]:
    """Fill owner and submitter fields from the authenticated identity when not supplied."""
    if user is None:
        return data
    defaults = {
        "userId": user.id,
        "submitterEmail": user.email,
        "submitterName": user.first_name or user.email,
    }
    for key, value in defaults.items():
        if value and not data.get(key):
            data[key] = value
    return data


def _stored_form_fields(form: Form) -> dict[str, Any]:
    return {
        "userId": form.user_id,
        "formType": form.form_type,
        "submitterEmail": form.submitter_email,
        "submitterName": form.submitter_name,
        "reimbursedName": form.reimbursed_name,
        "reimbursedEmail": form.reimbursed_email,
    }


def _insert_transaction(session: Session, form_id: int, row: TransactionFields) -> Transaction:
    transaction = Transaction(form_id=form_id, **row.to_columns())
    session.add(transaction)
    session.flush()
    logger.info(f"Inserted transaction {transaction.id} for form {form_id}")
    return transaction


def _insert_receipts(session: Session, transaction_id: int, files: list[ReceiptFile]) -> None:
    now = utcnow()
    session.add_all(
        Receipt(
            transaction_id=transaction_id,
            name=file.name,
            file_type=file.type,
            base64_content=file.base64_content,
            created_at=now,
            updated_at=now,
        )
        for file in files
    )
    logger.info(f"Inserted {len(files)} receipt(s) for transaction {transaction_id}")


def _delete_transactions(session: Session, transaction_ids: list[int]) -> None:
    """Delete transactions together with their receipts."""
    session.execute(delete(Receipt).where(Receipt.transaction_id.in_(transaction_ids)))
    session.execute(delete(Transaction).where(Transaction.id.in_(transaction_ids)))
    logger.info(f"Deleted transactions {transaction_ids} and their receipts")


def _form_transaction_ids(session: Session, form_id: int) -> list[int]:
    return list(session.scalars(select(Transaction.id).where(Transaction.form_id == form_id)))


def _receipts_by_transaction(
    session: Session, transaction_ids: list[int], batch_size: int
) -> dict[int, list[Receipt]]:
    """Fetch receipts for many transactions with one query per batch of ids."""
    grouped: dict[int, list[Receipt]] = defaultdict(list)
    for start in range(0, len(transaction_ids), batch_size):
        batch = transaction_ids[start : start + batch_size]
        stmt = select(Receipt).where(Receipt.transaction_id.in_(batch)).order_by(Receipt.id)
        for receipt in session.scalars(stmt):
            grouped[receipt.transaction_id].append(receipt)
    return grouped


def _transaction_read(transaction: Transaction, receipts: list[Receipt]) -> TransactionRead:
    return TransactionRead(
        transaction_id=transaction.id,
        form_id=transaction.form_id,
        date=transaction.date,
        account_line=transaction.account_line,
        department=transaction.department,
        place_vendor=transaction.place_vendor,
        description=transaction.description,
        amount=transaction.amount,
        receipts=[ReceiptRead.model_validate(receipt) for receipt in receipts],
    )


def load_form_graph(
    session: Session, form_id: int, *, skip_receipts: bool = False, batch_size: int = 10
) -> FormGraph | None:
    """Read a form with its transactions and, unless skipped, their receipts."""
    form = session.get(Form, form_id)
    if form is None:
        return None
    stmt = select(Transaction).where(Transaction.form_id == form_id).order_by(Transaction.id)
    transactions = list(session.scalars(stmt))
    receipts: dict[int, list[Receipt]] = {}
    if not skip_receipts and transactions:
        receipts = _receipts_by_transaction(session, [tx.id for tx in transactions], batch_size)
    return FormGraph(
        form=FormRead.model_validate(form),
        transactions=[_transaction_read(tx, receipts.get(tx.id, [])) for tx in transactions],
    )


def list_forms(session: Session, user_id: str | None = None) -> list[FormRead]:
    """List forms, newest first, optionally only those owned by ``user_id``."""
    stmt = select(Form).order_by(Form.created_at.desc(), Form.id.desc())
    if user_id is not None:
        stmt = stmt.where(Form.user_id == user_id)
    forms = [FormRead.model_validate(form) for form in session.scalars(stmt)]
    logger.info(f"Fetched {len(forms)} form(s)")
    return forms


def get_form_by_id(
    session: Session, form_id: int, *, skip_receipts: bool = False, settings: Settings | None = None
) -> FormGraph | None:
    """Return the hydrated form graph, or ``None`` when the form does not exist."""
    settings = settings or get_settings()
    graph = load_form_graph(
        session, form_id, skip_receipts=skip_receipts, batch_size=settings.receipt_batch_size
    )
    if graph is None:
        logger.info(f"Form with ID {form_id} not found")
    return graph


@action_boundary(CreateFormResult, "Failed to create form")
def add_form(
    session: Session,
    payload: FormCreate | Mapping[str, Any],
    *,
    user: CurrentUser | None = None,
    settings: Settings | None = None,
) -> CreateFormResult:
    """Create a form with its transactions and any attached receipt files."""
    settings = settings or get_settings()
    data = _with_identity(_as_payload(payload), user)
    data.setdefault("formType", settings.default_form_type)
    create = FormCreate.model_validate(data, context=_validation_context(settings))
    if not create.user_id:
        details = [{"field": "userId", "message": "Owner is required"}]
        raise ActionError(ErrorCode.VALIDATION, "Invalid form data: userId: Owner is required", details)

    now = utcnow()
    form = Form(**create.to_columns(), created_at=now, updated_at=now)
    session.add(form)
    session.flush()
    form_id = form.id
    logger.info(f"Inserted form {form_id} for user {create.user_id}")

    transaction_ids = []
    for item in create.transactions:
        transaction = _insert_transaction(session, form_id, item)
        transaction_ids.append(transaction.id)
        if item.new_files:
            _insert_receipts(session, transaction.id, item.new_files)
    session.commit()

    revalidate_path(DASHBOARD_PATH)
    return CreateFormResult(success=True, form_id=form_id, transaction_ids=transaction_ids)


@action_boundary(UpdateFormResult, "Failed to update form")
def update_form_with_files(
    session: Session,
    form_id: int,
    payload: FormUpdate | Mapping[str, Any],
    *,
    settings: Settings | None = None,
) -> UpdateFormResult:
    """Save a form: its own fields, deleted transactions, then updated or inserted transactions.

    Fields missing from the payload keep their stored values. A submitted
    transaction updates a stored row only when it carries the positive id of a
    transaction of this form; any other row is inserted. Transactions listed
    for deletion are removed together with their receipts, and submitted rows
    carrying one of those ids are skipped.
    """
    settings = settings or get_settings()
    form = session.get(Form, form_id)
    if form is None:
        raise ActionError(ErrorCode.NOT_FOUND, f"Form with ID {form_id} not found.")

    data = {**_stored_form_fields(form), **_as_payload(payload)}
    update = FormUpdate.model_validate(data, context=_validation_context(settings))

    known_ids = set(_form_transaction_ids(session, form_id))
    deleted_ids = [tx_id for tx_id in dict.fromkeys(update.deleted_transaction_ids) if tx_id in known_ids]
    ignored = set(update.deleted_transaction_ids) - known_ids
    if ignored:
        logger.warning(f"Ignoring deletion of transactions {sorted(ignored)} not on form {form_id}")
    changes = [tx.classify(known_ids) for tx in update.transactions if tx.id not in deleted_ids]

    # 1. form fields
    for column, value in update.to_columns(include_owner=False).items():
        setattr(form, column, value)
    form.updated_at = utcnow()
    session.flush()

    # 2. deletions
    if deleted_ids:
        _delete_transactions(session, deleted_ids)

    # 3. updates and inserts
    for change in changes:
        if isinstance(change, ExistingTransaction):
            transaction = session.get(Transaction, change.id)
            for column, value in change.row.to_columns().items():
                setattr(transaction, column, value)
            transaction_id = change.id
            logger.info(f"Updated transaction {transaction_id} of form {form_id}")
        else:
            transaction_id = _insert_transaction(session, form_id, change.row).id
        if change.new_files:
            _insert_receipts(session, transaction_id, change.new_files)
    session.commit()
    logger.info(f"Saved form {form_id}: {len(changes)} transaction(s), {len(deleted_ids)} deleted")

    revalidate_path(form_path(form_id))
    revalidate_path(DASHBOARD_PATH)

    graph = load_form_graph(session, form_id, batch_size=settings.receipt_batch_size)
    return UpdateFormResult(success=True, form=graph.form, transactions=graph.transactions)


@action_boundary(ActionResult, "Failed to delete receipt")
def delete_receipt(session: Session, form_id: int, receipt_id: int) -> ActionResult:
    """Delete a receipt after checking that it belongs to a transaction of ``form_id``."""
    receipt = session.get(Receipt, receipt_id)
    if receipt is None:
        raise ActionError(ErrorCode.NOT_FOUND, "Receipt not found")
    transaction = session.get(Transaction, receipt.transaction_id)
    if transaction is None:
        raise ActionError(ErrorCode.NOT_FOUND, "Transaction not found")
    if transaction.form_id != form_id:
        logger.warning(f"Transaction {transaction.id} does not belong to form {form_id}")
        raise ActionError(ErrorCode.UNAUTHORIZED, "Unauthorized access")

    session.delete(receipt)
    session.commit()
    logger.info(f"Deleted receipt {receipt_id} from form {form_id}")
    revalidate_path(form_path(form_id))
    return ActionResult(success=True)


@action_boundary(ActionResult, "Failed to delete form")
def delete_form(session: Session, form_id: int) -> ActionResult:
    """Delete a form with all of its transactions and their receipts."""
    form = session.get(Form, form_id)
    if form is None:
        raise ActionError(ErrorCode.NOT_FOUND, f"Form with ID {form_id} not found.")
    transaction_ids = _form_transaction_ids(session, form_id)
    if transaction_ids:
        _delete_transactions(session, transaction_ids)
    session.delete(form)
    session.commit()
    logger.info(f"Deleted form {form_id}")

    revalidate_path(DASHBOARD_PATH)
    revalidate_path(form_path(form_id))
    return ActionResult(success=True)
