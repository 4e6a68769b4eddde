from fastapi.testclient import TestClient

from empleos.main import app
from empleos.services.repository import RepositoryUnavailableError, get_repository


class FakePingRepository:
    def __init__(self, available: bool) -> None:
        self.available = available

    async def ping(self) -> bool:
        if not self.available:
            raise RepositoryUnavailableError("EI_DATABASE_URL is required")
        return True


def test_health() -> None:
    client = TestClient(app)
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_reports_database_state() -> None:
    app.dependency_overrides[get_repository] = lambda: FakePingRepository(available=True)
    try:
        client = TestClient(app)
        assert client.get("/api/health/ready").json() == {"status": "ready"}

        app.dependency_overrides[get_repository] = lambda: FakePingRepository(available=False)
        response = client.get("/api/health/ready")
        assert response.status_code == 503
        assert response.json()["detail"] == "EI_DATABASE_URL is required"
    finally:
        app.dependency_overrides.clear()


def test_request_validation_errors_use_400() -> None:
    client = TestClient(app)
    response = client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})
    assert response.status_code == 400
    assert isinstance(response.json()["detail"], list)
