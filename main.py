"""Main entrypoint and application factory for the Reimbursement Forms service.

This module initializes the FastAPI application, configures logging, creates the database tables,
mounts the JSON API and the server-rendered pages, and exposes the Scalar API reference endpoint.
It also includes the main entrypoint for running the app with Uvicorn.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from reimburse.api import pages_router, router
from reimburse.core.db import init_db
from reimburse.core.settings import get_settings
from reimburse.core.utils import setup_logging

logger = setup_logging(get_settings())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan event handler that creates the forms, transactions and receipts tables."""
    _ = app
    try:
        init_db()
    except SQLAlchemyError as exc:
        logger.error(f"Failed to create database tables: {exc}")
        raise
    logger.info("Database ready")
    yield


app = FastAPI(
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    title="Reimbursement Forms API",
    description="""
    The Reimbursement Forms API lets signed-in users submit expense reimbursement forms,
    attach receipts to each transaction, edit them later, and export them as PDF.

    **Endpoints:**
    - `GET /api/forms`: List forms, newest first.
    - `POST /api/forms`: Create a form with its transactions and receipts.
    - `GET /api/forms/{{form_id}}`: Get a form with its transactions and receipts.
    - `PUT /api/forms/{{form_id}}`: Save a form: update, insert and delete transactions, attach receipts.
    - `DELETE /api/forms/{{form_id}}`: Delete a form with everything under it.
    - `DELETE /api/forms/{{form_id}}/receipts/{{receipt_id}}`: Delete one receipt of a form.
    - `GET /api/forms/{{form_id}}/pdf`: Download the form as a PDF document.
    - `GET /api/me`: The signed-in user.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
    version="1.0.0",
)
app.include_router(router)
app.include_router(pages_router)


@app.get("/scalar", include_in_schema=False)
async def scalar_docs() -> HTMLResponse:
    """Return Scalar API reference."""
    return get_scalar_api_reference(openapi_url=app.openapi_url, title=app.title)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
