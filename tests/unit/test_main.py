"""Tests for the server entry point."""

from unittest.mock import Mock

from expense_dashboard import main
from expense_dashboard.config import settings


def test_run_serves_app_on_configured_address(monkeypatch):
    serve = Mock()
    monkeypatch.setattr("uvicorn.run", serve)
    monkeypatch.setattr(settings, "host", "127.0.0.1")
    monkeypatch.setattr(settings, "port", 9001)

    main.run()

    serve.assert_called_once()
    args, kwargs = serve.call_args
    assert args == (main.app,)
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9001
