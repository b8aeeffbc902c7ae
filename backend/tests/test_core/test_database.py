"""Tests for the request-scoped database session dependency."""
import pytest
from unittest.mock import MagicMock, patch

from app.core.database import get_db


class TestGetDb:

    def test_yields_session_and_closes(self):
        with patch("app.core.database.SessionLocal") as mock_session_local:
            session = MagicMock()
            mock_session_local.return_value = session

            gen = get_db()
            assert next(gen) is session
            with pytest.raises(StopIteration):
                next(gen)

            session.close.assert_called_once()

    def test_closes_when_request_fails(self):
        with patch("app.core.database.SessionLocal") as mock_session_local:
            session = MagicMock()
            mock_session_local.return_value = session

            gen = get_db()
            next(gen)
            with pytest.raises(ValueError):
                gen.throw(ValueError("handler failed"))

            session.close.assert_called_once()
