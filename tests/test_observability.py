"""
Tests for observability components.

Tests:
- Request context management
- Error handler with Sentry
- Request context middleware
"""

import pytest

from app.core.context import (
    set_request_id,
    get_request_id,
    generate_request_id,
    set_correlation_id,
    get_correlation_id,
    clear_context,
    get_context_dict,
    get_event_id,
    set_event_id,
)
from app.core.errors import (
    DuplicateEvent,
    ErrorHandler,
    MissingReference,
    WebhookError,
    capture_exception,
)


class TestRequestContext:
    """Tests for request context management."""

    def test_generate_request_id_format(self):
        """Test request ID format: req_{16 hex chars}."""
        request_id = generate_request_id()
        assert request_id.startswith("req_")
        assert len(request_id) == 20

    def test_request_id_context(self):
        clear_context()
        assert get_request_id() is None

        set_request_id("req_test123")
        assert get_request_id() == "req_test123"

        clear_context()
        assert get_request_id() is None

    def test_get_context_dict(self):
        clear_context()
        set_request_id("req_test")
        set_correlation_id("corr_test")
        set_event_id("evt_1")

        assert get_context_dict() == {
            "request_id": "req_test",
            "correlation_id": "corr_test",
            "stripe_event_id": "evt_1",
        }

        clear_context()
        assert get_correlation_id() is None
        assert get_event_id() is None


class TestWebhookErrors:
    def test_duplicate_event_carries_id(self):
        err = DuplicateEvent("evt_1")
        assert isinstance(err, WebhookError)
        assert err.event_id == "evt_1"

    def test_missing_reference_message(self):
        err = MissingReference("Customer", "cus_1")
        assert err.entity == "Customer"
        assert str(err) == "Customer not found: cus_1"


class TestErrorHandler:
    """Tests for error handler."""

    def test_error_handler_suppresses_exception(self):
        with ErrorHandler("test_operation") as handler:
            raise ValueError("test error")

        assert isinstance(handler.error, ValueError)

    def test_error_handler_reraises_when_configured(self):
        with pytest.raises(ValueError):
            with ErrorHandler("test_operation", reraise=True):
                raise ValueError("test error")

    def test_error_handler_no_exception(self):
        with ErrorHandler("test_operation") as handler:
            result = "success"

        assert result == "success"
        assert handler.event_id is None
        assert handler.error is None

    def test_error_handler_without_capture(self):
        with ErrorHandler("test_operation", context={"invoice_id": "in_1"}, capture=False) as handler:
            raise RuntimeError("boom")

        assert handler.event_id is None
        assert handler.context == {"invoice_id": "in_1"}

    def test_capture_exception_without_sentry(self):
        """Test capture_exception logs when Sentry not initialized."""
        event_id = capture_exception(ValueError("test"), context={"test": True})
        assert event_id is None


class TestRequestContextMiddleware:
    """Tests for request context middleware."""

    def _app(self):
        from starlette.applications import Starlette
        from starlette.responses import JSONResponse
        from starlette.routing import Route
        from app.middleware.context import RequestContextMiddleware

        async def homepage(request):
            return JSONResponse({"request_id": get_request_id(), "correlation_id": get_correlation_id()})

        app = Starlette(routes=[Route("/", homepage)])
        app.add_middleware(RequestContextMiddleware)
        return app

    def test_middleware_generates_request_id(self):
        from starlette.testclient import TestClient

        response = TestClient(self._app()).get("/")

        assert response.status_code == 200
        assert response.headers["X-Request-ID"].startswith("req_")

    def test_middleware_uses_provided_ids(self):
        from starlette.testclient import TestClient

        response = TestClient(self._app()).get(
            "/", headers={"X-Request-ID": "custom_id_123", "X-Correlation-ID": "corr_1"}
        )

        assert response.headers["X-Request-ID"] == "custom_id_123"
        assert response.headers["X-Correlation-ID"] == "corr_1"
        assert response.json() == {"request_id": "custom_id_123", "correlation_id": "corr_1"}

    def test_middleware_rejects_unsafe_request_id(self):
        from starlette.testclient import TestClient

        response = TestClient(self._app()).get("/", headers={"X-Request-ID": "bad id; drop"})

        assert response.headers["X-Request-ID"] != "bad id; drop"
        assert response.headers["X-Request-ID"].startswith("req_")
