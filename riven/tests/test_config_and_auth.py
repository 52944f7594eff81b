import logging

import jwt
import pytest

from riven.core.auth import SessionAuth, verify_token
from riven.core.config import Settings, validate_config
from riven.core.errors import UnauthorizedError

SECRET = "riven-test-secret-0123456789abcdef"


def test_validate_config_defaults_are_clean():
    assert validate_config(strict=True, settings_obj=Settings()) is True


def test_validate_config_warns_for_missing_backend_keys(caplog):
    cfg = Settings(STREAK_BACKEND="sql", DATABASE_URL=None)
    with caplog.at_level(logging.WARNING, logger="riven"):
        assert validate_config(strict=False, settings_obj=cfg) is False
    assert "DATABASE_URL" in caplog.text


def test_validate_config_strict_raises():
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=Settings(STREAK_BACKEND="http"))
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=Settings(STREAK_AT_RISK_HOURS=48, STREAK_GRACE_HOURS=48))
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=Settings(STREAK_SESSION_IDLE_SECONDS=0))


def test_session_auth_notifies_on_transitions_only():
    auth = SessionAuth()
    assert auth.is_authenticated() is False
    events = []
    remove = auth.add_listener(events.append)

    auth.log_out()
    auth.log_in()
    auth.log_in()
    auth.log_out()
    auth.log_in()
    assert events == [True, False, True]

    remove()
    auth.log_out()
    assert events == [True, False, True]
    assert auth.is_authenticated() is False


def test_verify_token():
    token = jwt.encode({"sub": "user-9"}, SECRET, algorithm="HS256")
    assert verify_token(token, SECRET) == "user-9"

    with pytest.raises(UnauthorizedError):
        verify_token("not-a-jwt", SECRET)
    with pytest.raises(UnauthorizedError):
        verify_token(jwt.encode({"name": "no subject"}, SECRET, algorithm="HS256"), SECRET)
    with pytest.raises(UnauthorizedError):
        verify_token(jwt.encode({"sub": "u", "exp": 1}, SECRET, algorithm="HS256"), SECRET)
