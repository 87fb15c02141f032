"""Server-rendered pages: dashboard, new form, and the form view/edit page.

Browsers submit multipart forms whose transaction rows are indexed
(``transactions-<n>-<field>``). Uploaded receipt files are encoded to base64
data URLs here, before the write path is called, and the per-transaction
receipt cap is enforced here only.
"""

import re
from collections import defaultdict
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from starlette.datastructures import FormData, UploadFile

from reimburse.api.dependencies import get_optional_user, get_session, get_settings
from reimburse.core.dates import format_display_date
from reimburse.core.errors import HTTP_STATUS, ErrorCode
from reimburse.core.models import ACCOUNT_LINES, DEPARTMENTS, CurrentUser, FormGraph
from reimburse.core.settings import Settings
from reimburse.core.utils import encode_data_url, get_logger
from reimburse.services import form_service
from reimburse.services.cache import page_cache
from reimburse.services.pdf_service import generate_form_pdf_action, money

router = APIRouter(include_in_schema=False)
logger = get_logger("reimburse.pages")

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["display_date"] = format_display_date
templates.env.filters["money"] = money

ROW_KEY = re.compile(r"^transactions-(\d+)-(\w+)$")
FORM_FIELDS = ("formType", "submitterName", "submitterEmail", "reimbursedName", "reimbursedEmail")
ROW_VALUE_FIELDS = ("date", "placeVendor", "description", "amount")


def receipt_src(receipt: Any) -> str:
    """Browser-loadable source for a stored receipt."""
    content = receipt.base64_content
    return content if content.startswith("data:") else f"data:{receipt.file_type};base64,{content}"


templates.env.filters["receipt_src"] = receipt_src


async def encode_upload(upload: UploadFile) -> dict[str, str]:
    """Read an uploaded file into the ``{name, type, base64Content}`` triple of the write path."""
    data = await upload.read()
    file_type = upload.content_type or "application/octet-stream"
    return {"name": upload.filename or "", "type": file_type, "base64Content": encode_data_url(data, file_type)}


def _row_int(row: dict[str, Any], field: str) -> int | None:
    """Integer value of a hidden row field; ``None`` when empty."""
    text = str(row.pop(field, "") or "").strip()
    return int(text) if text else None


def _is_blank(row: dict[str, Any]) -> bool:
    return not any(str(row.get(field) or "").strip() for field in ROW_VALUE_FIELDS)


async def parse_form_submission(form: FormData, max_receipts: int) -> tuple[dict[str, Any], list[str]]:
    """Turn a submitted page form into a write-path payload plus presentation-level errors."""
    rows: dict[int, dict[str, Any]] = defaultdict(dict)
    uploads: dict[int, list[UploadFile]] = defaultdict(list)
    deleted_rows: set[int] = set()
    for key, value in form.multi_items():
        match = ROW_KEY.match(key)
        if not match:
            continue
        index, field = int(match[1]), match[2]
        if field == "files":
            if isinstance(value, UploadFile) and value.filename:
                uploads[index].append(value)
        elif field == "delete":
            deleted_rows.add(index)
        else:
            rows[index][field] = value

    transactions: list[dict[str, Any]] = []
    deleted_ids: list[int] = []
    errors: list[str] = []
    for index in sorted(rows):
        row = rows[index]
        try:
            tx_id = _row_int(row, "id")
            stored = _row_int(row, "receiptCount") or 0
        except ValueError:
            errors.append(f"Transaction #{index + 1}: the submitted row is malformed.")
            continue
        if index in deleted_rows:
            if tx_id:
                deleted_ids.append(tx_id)
            continue
        files = uploads.get(index, [])
        if tx_id is None and _is_blank(row) and not files:
            continue
        if stored + len(files) > max_receipts:
            errors.append(f"Transaction #{index + 1}: at most {max_receipts} receipts are allowed per transaction.")
            continue
        row["id"] = tx_id
        row["newFiles"] = [await encode_upload(upload) for upload in files]
        transactions.append(row)

    payload: dict[str, Any] = {field: form[field] for field in FORM_FIELDS if form.get(field)}
    payload["transactions"] = transactions
    payload["deletedTransactionIds"] = deleted_ids
    return payload, errors


def _context(request: Request, user: CurrentUser | None, **extra: Any) -> dict[str, Any]:
    return {
        "request": request,
        "user": user,
        "account_lines": ACCOUNT_LINES,
        "departments": DEPARTMENTS,
        **extra,
    }


def _render(request: Request, name: str, context: dict[str, Any], status_code: int = 200) -> HTMLResponse:
    return templates.TemplateResponse(request, name, context, status_code=status_code)


def _signin(request: Request) -> HTMLResponse:
    return _render(request, "signin.html", _context(request, None), status_code=401)


def _render_cached(key: str, name: str, context: dict[str, Any]) -> HTMLResponse:
    html = templates.get_template(name).render(context)
    page_cache.set(key, html)
    return HTMLResponse(html)


@router.get("/", response_class=HTMLResponse)
def index(request: Request, user: CurrentUser | None = Depends(get_optional_user)) -> HTMLResponse:
    """Landing page."""
    return _render(request, "index.html", _context(request, user))


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(
    request: Request,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
) -> HTMLResponse:
    """List every form with links to view, export and delete it."""
    if user is None:
        return _signin(request)
    key = f"{form_service.DASHBOARD_PATH}?user={user.id}"
    cached = page_cache.get(key)
    if cached is not None:
        return HTMLResponse(cached)
    forms = form_service.list_forms(session)
    return _render_cached(key, "dashboard.html", _context(request, user, forms=forms))


@router.get("/forms/new", response_class=HTMLResponse)
def new_form(
    request: Request,
    rows: int = 1,
    form_type: str | None = Query(None, alias="type"),
    user: CurrentUser | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
) -> HTMLResponse:
    """Blank form with ``rows`` transaction rows."""
    if user is None:
        return _signin(request)
    values = {"formType": form_type or settings.default_form_type}
    tx_rows = [{} for _ in range(max(rows, 1))]
    context = _context(request, user, values=values, tx_rows=tx_rows, error=None, settings=settings)
    return _render(request, "form_new.html", context)


@router.post("/forms/new", response_class=HTMLResponse)
async def create_form(
    request: Request,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Create a form from the submitted page and open it."""
    if user is None:
        return _signin(request)
    submitted = await request.form()
    payload, errors = await parse_form_submission(submitted, settings.max_receipts_per_transaction)
    error = " ".join(errors) if errors else None
    if error is None:
        result = form_service.add_form(session, payload, user=user, settings=settings)
        if result.success:
            return RedirectResponse(f"/forms/{result.form_id}", status_code=303)
        error = result.error
    values = {field: submitted.get(field) for field in FORM_FIELDS}
    tx_rows = payload["transactions"] or [{}]
    context = _context(request, user, values=values, tx_rows=tx_rows, error=error, settings=settings)
    return _render(request, "form_new.html", context, status_code=400)


def _form_page(
    request: Request,
    user: CurrentUser,
    graph: FormGraph,
    *,
    editing: bool,
    settings: Settings,
    error: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    context = _context(request, user, graph=graph, editing=editing, error=error, settings=settings)
    if editing or error:
        return _render(request, "form_detail.html", context, status_code=status_code)
    key = f"{form_service.form_path(graph.form.id)}?user={user.id}"
    return _render_cached(key, "form_detail.html", context)


@router.get("/forms/{form_id}", response_class=HTMLResponse)
def view_form(
    request: Request,
    form_id: int,
    edit: bool = False,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
) -> HTMLResponse:
    """View a form, or edit it with ``?edit=1``."""
    if user is None:
        return _signin(request)
    if not edit:
        cached = page_cache.get(f"{form_service.form_path(form_id)}?user={user.id}")
        if cached is not None:
            return HTMLResponse(cached)
    graph = form_service.get_form_by_id(session, form_id, settings=settings)
    if graph is None:
        return _render(request, "not_found.html", _context(request, user, form_id=form_id), status_code=404)
    return _form_page(request, user, graph, editing=edit, settings=settings)


@router.post("/forms/{form_id}", response_class=HTMLResponse)
async def save_form(
    request: Request,
    form_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Save the edit page; on failure show the stored form again with the error."""
    if user is None:
        return _signin(request)
    submitted = await request.form()
    payload, errors = await parse_form_submission(submitted, settings.max_receipts_per_transaction)
    error = " ".join(errors) if errors else None
    if error is None:
        result = form_service.update_form_with_files(session, form_id, payload, settings=settings)
        if result.success:
            return RedirectResponse(f"/forms/{form_id}", status_code=303)
        error = result.error
    graph = form_service.get_form_by_id(session, form_id, settings=settings)
    if graph is None:
        return _render(request, "not_found.html", _context(request, user, form_id=form_id), status_code=404)
    return _form_page(request, user, graph, editing=True, settings=settings, error=error, status_code=400)


@router.post("/forms/{form_id}/delete", response_class=HTMLResponse)
def delete_form(
    request: Request,
    form_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
) -> Response:
    """Delete a form and return to the dashboard."""
    if user is None:
        return _signin(request)
    result = form_service.delete_form(session, form_id)
    if not result.success:
        forms = form_service.list_forms(session)
        context = _context(request, user, forms=forms, error=result.error)
        return _render(request, "dashboard.html", context, status_code=400)
    return RedirectResponse(form_service.DASHBOARD_PATH, status_code=303)


@router.post("/forms/{form_id}/receipts/{receipt_id}/delete", response_class=HTMLResponse)
def delete_receipt(
    request: Request,
    form_id: int,
    receipt_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Delete a receipt and go back to editing the form."""
    if user is None:
        return _signin(request)
    result = form_service.delete_receipt(session, form_id, receipt_id)
    if not result.success:
        graph = form_service.get_form_by_id(session, form_id, settings=settings)
        if graph is None:
            return _render(request, "not_found.html", _context(request, user, form_id=form_id), status_code=404)
        return _form_page(request, user, graph, editing=True, settings=settings, error=result.error, status_code=400)
    return RedirectResponse(f"/forms/{form_id}?edit=1", status_code=303)


@router.get("/forms/{form_id}/pdf")
def download_pdf(
    request: Request,
    form_id: int,
    session: Session = Depends(get_session),
    user: CurrentUser | None = Depends(get_optional_user),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Download the form as a PDF file."""
    if user is None:
        return _signin(request)
    result = generate_form_pdf_action(session, form_id, settings=settings)
    if not result.success:
        context = _context(request, user, form_id=form_id, error=result.error)
        return _render(request, "not_found.html", context, status_code=HTTP_STATUS[result.code or ErrorCode.INTERNAL])
    return Response(
        content=result.data,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=form-{form_id}.pdf"},
    )
