"""Tests for exception classes and RFC 7807 handlers."""

from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from seedgraph.core.exceptions import (
    BadRequestError,
    DatabaseError,
    RelationshipAnalysisError,
    SeedGraphError,
    register_exception_handlers,
)


class _Body(BaseModel):
    tables: list[str]


def _make_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/bad-request")
    async def bad_request():
        raise BadRequestError("Tables cannot be both included and excluded: users")

    @app.get("/analysis-failed")
    async def analysis_failed():
        raise RelationshipAnalysisError()

    @app.get("/boom")
    async def boom():
        raise RuntimeError("unexpected")

    @app.post("/validate")
    async def validate(body: _Body):
        return body

    return app


class TestExceptionClasses:
    """Tests for the SeedGraphError hierarchy."""

    def test_bad_request_error(self):
        """BadRequestError should map to 400."""
        exc = BadRequestError("nope", details={"tables": ["users"]})
        assert exc.status_code == 400
        assert exc.code == "BAD_REQUEST"
        assert exc.details == {"tables": ["users"]}
        assert exc.title == "Bad Request"

    def test_database_error(self):
        """DatabaseError should map to 500."""
        exc = DatabaseError()
        assert exc.status_code == 500
        assert exc.code == "DATABASE_ERROR"

    def test_relationship_analysis_error(self):
        """RelationshipAnalysisError should map to 503."""
        exc = RelationshipAnalysisError()
        assert isinstance(exc, SeedGraphError)
        assert exc.status_code == 503
        assert exc.code == "ANALYSIS_FAILED"
        assert exc.message == "Relationship analysis failed"


class TestExceptionHandlers:
    """Tests for problem+json responses."""

    def test_seedgraph_error_rendered_as_problem(self):
        """Application errors should render RFC 7807 bodies."""
        client = TestClient(_make_app())
        response = client.get("/bad-request")

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/problem+json")
        data = response.json()
        assert data["status"] == 400
        assert data["code"] == "BAD_REQUEST"
        assert "users" in data["detail"]

    def test_analysis_error_returns_503(self):
        """RelationshipAnalysisError should produce a 503 problem."""
        client = TestClient(_make_app())
        response = client.get("/analysis-failed")

        assert response.status_code == 503
        assert response.json()["code"] == "ANALYSIS_FAILED"

    def test_validation_error_lists_fields(self):
        """Validation errors should list offending fields."""
        client = TestClient(_make_app())
        response = client.post("/validate", json={"tables": "users"})

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert data["errors"][0]["field"] == "tables"

    def test_unhandled_error_returns_500(self):
        """Unexpected exceptions should become a generic 500 problem."""
        client = TestClient(_make_app(), raise_server_exceptions=False)
        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"
