"""JSON endpoints for the reimbursement forms API.

Each endpoint delegates to the form service and maps its result envelope to an
HTTP status: 200/201 on success, 400 for invalid input, 403 for ownership
violations, 404 for missing records and 500 for store failures.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reimburse.api.dependencies import get_current_user, get_session, get_settings
from reimburse.core.errors import HTTP_STATUS, ErrorCode
from reimburse.core.models import ActionResult, CurrentUser, FormGraph, FormRead
from reimburse.core.settings import Settings
from reimburse.core.utils import get_logger
from reimburse.services import form_service
from reimburse.services.pdf_service import generate_form_pdf_action

router = APIRouter()
logger = get_logger("reimburse.api")

NOT_FOUND_EXAMPLE = {"application/json": {"example": {"detail": "Form not found"}}}


def envelope_response(result: ActionResult, success_status: int = 200) -> JSONResponse:
    """Serialize a result envelope with the status matching its outcome."""
    status_code = success_status if result.success else HTTP_STATUS[result.code or ErrorCode.INTERNAL]
    return JSONResponse(result.model_dump(mode="json", by_alias=True), status_code=status_code)


@router.get(
    "/health",
    summary="Health check",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/api/me", response_model=CurrentUser, summary="Current user")
def me(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Return the identity of the signed-in user."""
    return user


@router.get(
    "/api/forms",
    response_model=list[FormRead],
    summary="List forms",
    description="List every form, newest first. Pass `userId` to only list the forms owned by that user.",
)
def list_forms(
    user_id: str | None = Query(None, alias="userId"),
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(get_current_user),
) -> list[FormRead]:
    """List forms, optionally filtered by owner."""
    try:
        return form_service.list_forms(session, user_id)
    except SQLAlchemyError as exc:
        logger.exception("Error fetching forms")
        raise HTTPException(500, "Internal Server Error") from exc


@router.post(
    "/api/forms",
    status_code=201,
    summary="Create a form",
    description=(
        "Create a form with at least one transaction. Each transaction may carry `newFiles` "
        "(`{name, type, base64Content}`) that are stored as receipts. The owner and submitter "
        "fields default to the signed-in user."
    ),
    responses={
        201: {"content": {"application/json": {"example": {"success": True, "formId": 1, "transactionIds": [1]}}}},
        400: {"description": "Invalid form data."},
    },
)
def create_form(
    payload: dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Create a form and its transactions."""
    logger.info(f"Create form request from user {user.id}")
    result = form_service.add_form(session, payload, user=user, settings=settings)
    return envelope_response(result, success_status=201)


@router.get(
    "/api/forms/{form_id}",
    response_model=FormGraph,
    summary="Get a form with transactions and receipts",
    description="Pass `skipReceipts=true` to get every transaction with an empty `receipts` list.",
    responses={404: {"description": "Form not found.", "content": NOT_FOUND_EXAMPLE}},
)
def get_form(
    form_id: int,
    skip_receipts: bool = Query(False, alias="skipReceipts"),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    _: CurrentUser = Depends(get_current_user),
) -> FormGraph:
    """Fetch one form graph."""
    try:
        graph = form_service.get_form_by_id(session, form_id, skip_receipts=skip_receipts, settings=settings)
    except SQLAlchemyError as exc:
        logger.exception(f"Error fetching form {form_id}")
        raise HTTPException(500, "Internal Server Error") from exc
    if graph is None:
        raise HTTPException(404, "Form not found")
    return graph


@router.put(
    "/api/forms/{form_id}",
    summary="Save a form with new files",
    description=(
        "Update the form's fields, delete the transactions listed in `deletedTransactionIds`, update "
        "transactions carrying the positive id of one of this form's transactions and insert the rest. "
        "Returns the refreshed form and transactions."
    ),
    responses={404: {"description": "Form not found."}, 400: {"description": "Invalid form data."}},
)
def update_form(
    form_id: int,
    payload: dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    _: CurrentUser = Depends(get_current_user),
) -> JSONResponse:
    """Reconcile the submitted transactions with the stored ones."""
    return envelope_response(form_service.update_form_with_files(session, form_id, payload, settings=settings))


@router.delete("/api/forms/{form_id}", summary="Delete a form with its transactions and receipts")
def delete_form(
    form_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(get_current_user),
) -> JSONResponse:
    """Delete a form."""
    return envelope_response(form_service.delete_form(session, form_id))


@router.delete(
    "/api/forms/{form_id}/receipts/{receipt_id}",
    summary="Delete a receipt",
    responses={403: {"description": "The receipt does not belong to this form."}},
)
def delete_receipt(
    form_id: int,
    receipt_id: int,
    session: Session = Depends(get_session),
    _: CurrentUser = Depends(get_current_user),
) -> JSONResponse:
    """Delete one receipt of a form."""
    return envelope_response(form_service.delete_receipt(session, form_id, receipt_id))


@router.get(
    "/api/forms/{form_id}/pdf",
    response_class=Response,
    summary="Download a form as PDF",
    responses={200: {"content": {"application/pdf": {}}}, 404: {"description": "Form not found."}},
)
def download_pdf(
    form_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    _: CurrentUser = Depends(get_current_user),
) -> Response:
    """Render a form as a PDF attachment."""
    result = generate_form_pdf_action(session, form_id, settings=settings)
    if not result.success:
        return envelope_response(result)
    return Response(
        content=result.data,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=form-{form_id}.pdf"},
    )
