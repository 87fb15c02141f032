"""API integration tests for the reimbursement forms service."""

from fastapi.testclient import TestClient
from httpx import Response
from jose import jwt

from main import app
from reimburse.core.settings import get_settings
from tests.conftest import form_payload, png_data_url, transaction_payload

HTTP_200_OK = 200
HTTP_201_CREATED = 201
HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404


def _expect_status(response: Response, expected: int) -> None:
    if response.status_code != expected:
        msg = f"Expected status {expected}, got {response.status_code}: {response.text}"
        raise AssertionError(msg)


def _create(client: TestClient, **overrides: object) -> dict:
    response = client.post("/api/forms", json=form_payload(**overrides))
    _expect_status(response, HTTP_201_CREATED)
    return response.json()


def test_health() -> None:
    """Test the /health endpoint returns status ok."""
    response = TestClient(app).get("/health")
    _expect_status(response, HTTP_200_OK)
    if response.json() != {"status": "ok"}:
        msg = f"Expected response {{'status': 'ok'}}, got {response.json()}"
        raise AssertionError(msg)


def test_scalar_docs() -> None:
    """Test the /scalar endpoint returns the API reference page."""
    response = TestClient(app).get("/scalar")
    _expect_status(response, HTTP_200_OK)
    if not ("openapi" in response.text or "swagger" in response.text):
        msg = "Expected 'openapi' or 'swagger' in response text"
        raise AssertionError(msg)


def test_api_requires_authentication(anonymous_client: TestClient) -> None:
    """Requests without a session are rejected with 401."""
    for path in ("/api/me", "/api/forms", "/api/forms/1"):
        _expect_status(anonymous_client.get(path), HTTP_401_UNAUTHORIZED)


def test_bearer_session_token(anonymous_client: TestClient) -> None:
    """A signed session token identifies the user, from the header or the session cookie."""
    settings = get_settings()
    claims = {"sub": "user_789", "email": "lee@church.org", "first_name": "Lee"}
    token = jwt.encode(claims, settings.auth_secret_key, algorithm=settings.auth_algorithm)

    response = anonymous_client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    _expect_status(response, HTTP_200_OK)
    if response.json() != {"id": "user_789", "email": "lee@church.org", "firstName": "Lee"}:
        msg = f"Unexpected user: {response.json()}"
        raise AssertionError(msg)

    anonymous_client.cookies.set(settings.auth_session_cookie, token)
    _expect_status(anonymous_client.get("/api/me"), HTTP_200_OK)


def test_forged_token_is_rejected(anonymous_client: TestClient) -> None:
    """Tokens signed with another key are rejected."""
    token = jwt.encode({"sub": "intruder"}, "some-other-key", algorithm="HS256")
    response = anonymous_client.get("/api/me", headers={"Authorization": f"Bearer {token}"})
    _expect_status(response, HTTP_401_UNAUTHORIZED)


def test_create_get_and_list(client: TestClient) -> None:
    """A created form is readable and listed."""
    created = _create(client)
    if not created["success"] or len(created["transactionIds"]) != 1:
        msg = f"Unexpected create response: {created}"
        raise AssertionError(msg)
    form_id = created["formId"]

    response = client.get(f"/api/forms/{form_id}")
    _expect_status(response, HTTP_200_OK)
    graph = response.json()
    tx = graph["transactions"][0]
    if graph["form"]["reimbursedName"] != "Jane Doe" or tx["transactionId"] != created["transactionIds"][0]:
        msg = f"Unexpected graph: {graph}"
        raise AssertionError(msg)
    if tx["date"] != "2024-03-01":
        msg = f"Expected date 2024-03-01, got {tx['date']}"
        raise AssertionError(msg)

    listed = client.get("/api/forms").json()
    if [form["id"] for form in listed] != [form_id]:
        msg = f"Expected the form to be listed, got {listed}"
        raise AssertionError(msg)


def test_create_invalid_payload(client: TestClient) -> None:
    """Invalid input is a 400 with field-attributed details."""
    response = client.post("/api/forms", json=form_payload(transactions=[transaction_payload(amount=0)]))
    _expect_status(response, HTTP_400_BAD_REQUEST)
    body = response.json()
    if body["success"] or body["code"] != "validation" or body["details"][0]["field"] != "transactions.0.amount":
        msg = f"Unexpected error body: {body}"
        raise AssertionError(msg)


def test_get_missing_form(client: TestClient) -> None:
    """Unknown forms are a 404."""
    response = client.get("/api/forms/999")
    _expect_status(response, HTTP_404_NOT_FOUND)
    if response.json() != {"detail": "Form not found"}:
        msg = f"Unexpected body: {response.json()}"
        raise AssertionError(msg)


def test_update_and_skip_receipts(client: TestClient) -> None:
    """Saving attaches receipts; skipReceipts hides them from reads."""
    created = _create(client)
    tx_id = created["transactionIds"][0]
    new_file = {"name": "r.png", "type": "image/png", "base64Content": png_data_url()}
    payload = {"transactions": [transaction_payload(id=tx_id, newFiles=[new_file])], "deletedTransactionIds": []}
    response = client.put(f"/api/forms/{created['formId']}", json=payload)
    _expect_status(response, HTTP_200_OK)
    body = response.json()
    if not body["success"] or len(body["transactions"][0]["receipts"]) != 1:
        msg = f"Unexpected update response: {body}"
        raise AssertionError(msg)

    skipped = client.get(f"/api/forms/{created['formId']}", params={"skipReceipts": "true"}).json()
    if skipped["transactions"][0]["receipts"] != []:
        msg = f"Expected no receipts with skipReceipts, got {skipped}"
        raise AssertionError(msg)


def test_update_missing_form(client: TestClient) -> None:
    """Saving an unknown form is a 404 envelope."""
    response = client.put("/api/forms/999", json={"transactions": []})
    _expect_status(response, HTTP_404_NOT_FOUND)
    if response.json()["error"] != "Form with ID 999 not found.":
        msg = f"Unexpected body: {response.json()}"
        raise AssertionError(msg)


def test_delete_receipt_of_other_form(client: TestClient) -> None:
    """Deleting a receipt through another form is a 403."""
    new_file = {"name": "r.png", "type": "image/png", "base64Content": png_data_url()}
    owner = _create(client, transactions=[transaction_payload(newFiles=[new_file])])
    other = _create(client)
    receipt_id = client.get(f"/api/forms/{owner['formId']}").json()["transactions"][0]["receipts"][0]["id"]

    response = client.delete(f"/api/forms/{other['formId']}/receipts/{receipt_id}")
    _expect_status(response, HTTP_403_FORBIDDEN)
    response = client.delete(f"/api/forms/{owner['formId']}/receipts/{receipt_id}")
    _expect_status(response, HTTP_200_OK)


def test_delete_form(client: TestClient) -> None:
    """Deleted forms are gone."""
    created = _create(client)
    _expect_status(client.delete(f"/api/forms/{created['formId']}"), HTTP_200_OK)
    _expect_status(client.get(f"/api/forms/{created['formId']}"), HTTP_404_NOT_FOUND)
    _expect_status(client.delete(f"/api/forms/{created['formId']}"), HTTP_404_NOT_FOUND)


def test_download_pdf(client: TestClient) -> None:
    """The PDF endpoint returns an attachment."""
    created = _create(client)
    response = client.get(f"/api/forms/{created['formId']}/pdf")
    _expect_status(response, HTTP_200_OK)
    if response.headers["content-type"] != "application/pdf" or not response.content.startswith(b"%PDF"):
        msg = f"Unexpected PDF response: {response.headers}"
        raise AssertionError(msg)
    if f"form-{created['formId']}.pdf" not in response.headers["content-disposition"]:
        msg = "Expected the form id in the attachment file name"
        raise AssertionError(msg)
    _expect_status(client.get("/api/forms/999/pdf"), HTTP_404_NOT_FOUND)
