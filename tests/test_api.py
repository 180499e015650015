import pytest
from fastapi.testclient import TestClient

from licensekeeper.api.routes import create_app
from licensekeeper.client.domain.results import AuthorityInvalid

from conftest import VALID_KEY


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def api(client) -> TestClient:
    return TestClient(create_app(client))


def test_health(api: TestClient) -> None:
    response = api.get("/health")
    assert response.status_code == 200  # noqa: PLR2004
    assert response.json()["status"] == "ok"


def test_status_and_feature_without_license(api: TestClient) -> None:
    status = api.get("/license/status").json()
    assert status["status"] == "unlicensed"
    assert status["is_licensed"] is False
    assert api.get("/license/feature").json() == {"available": False}


def test_activate_and_deactivate(api: TestClient, authority) -> None:
    response = api.post("/license/activate", json={"license_key": VALID_KEY})
    assert response.status_code == 200  # noqa: PLR2004
    assert response.json()["data"] == {"instance_id": "i-1"}
    assert api.get("/license/feature").json() == {"available": True}
    assert api.get("/license/status").json()["instance_id"] == "i-1"

    response = api.post("/license/activate", json={"license_key": VALID_KEY})
    assert response.status_code == 409  # noqa: PLR2004

    response = api.post("/license/deactivate")
    assert response.status_code == 200  # noqa: PLR2004
    assert response.json()["remote_confirmed"] is True
    assert authority.count("deactivate") == 1

    response = api.post("/license/deactivate")
    assert response.status_code == 409  # noqa: PLR2004


def test_activate_rejected_key(api: TestClient, authority) -> None:
    authority.validate_results = [AuthorityInvalid("License key not found.", 404)]
    response = api.post("/license/activate", json={"license_key": VALID_KEY})
    assert response.status_code == 400  # noqa: PLR2004
    assert response.json()["detail"] == "License key not found."


def test_activate_requires_body(api: TestClient) -> None:
    assert api.post("/license/activate", json={}).status_code == 422  # noqa: PLR2004


def test_validate_and_errors(api: TestClient, authority) -> None:
    api.post("/license/activate", json={"license_key": "bad"})
    errors = api.get("/license/errors").json()
    assert [e["code"] for e in errors] == ["INVALID_FORMAT"]

    api.post("/license/activate", json={"license_key": VALID_KEY})
    assert api.post("/license/validate").json() == {"valid": True}
    assert authority.count("validate") == 1

    assert api.post("/license/validate", params={"force": True}).json() == {"valid": True}
    assert authority.count("validate") == 2  # noqa: PLR2004
