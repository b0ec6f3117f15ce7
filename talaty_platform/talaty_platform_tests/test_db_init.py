"""Tests for database initialization."""
import pytest
from sqlalchemy import inspect

from talaty_platform.talaty_platform.auth_service import db as db_module
from talaty_platform.talaty_platform.auth_service.db import check_db_connection, configure_database, init_db


@pytest.fixture
def fresh_engine(tmp_path, settings):
    """Point the session factory at an empty database, then restore the shared one."""
    engine = configure_database(f"sqlite:///{tmp_path / 'init.db'}")
    yield engine
    engine.dispose()
    configure_database(settings.DATABASE_URL)


def test_init_db_creates_tables(fresh_engine):
    assert inspect(fresh_engine).get_table_names() == []

    init_db()

    tables = set(inspect(fresh_engine).get_table_names())
    assert {"users", "refresh_tokens", "otp_verifications", "auth_events"} <= tables


def test_users_table_columns(fresh_engine):
    init_db()
    columns = {col["name"]: col for col in inspect(fresh_engine).get_columns("users")}

    for name in ("id", "email", "password", "registration_number_encrypted",
                 "registration_number_iv", "ekyc_status", "is_active"):
        assert name in columns, f"Column {name} should exist in users table"
    # The plaintext registration number is never a column
    assert "registration_number" not in columns
    assert columns["email"]["nullable"] is False
    assert columns["registration_number_encrypted"]["nullable"] is True


def test_refresh_token_jti_is_unique(fresh_engine):
    init_db()
    indexes = inspect(fresh_engine).get_indexes("refresh_tokens")
    jti_index = next(idx for idx in indexes if idx["column_names"] == ["jti"])
    assert jti_index["unique"]


def test_auth_events_indexes(fresh_engine):
    init_db()
    index_names = {idx["name"] for idx in inspect(fresh_engine).get_indexes("auth_events")}
    assert {
        "ix_auth_events_user_id",
        "ix_auth_events_timestamp",
        "ix_auth_events_event_type",
        "ix_auth_events_user_id_timestamp",
    } <= index_names


def test_auth_events_foreign_key(fresh_engine):
    init_db()
    foreign_keys = inspect(fresh_engine).get_foreign_keys("auth_events")
    user_fk = next((fk for fk in foreign_keys if fk["referred_table"] == "users"), None)
    assert user_fk is not None, "Foreign key to users table should exist"
    assert user_fk["constrained_columns"] == ["user_id"]


def test_init_db_is_idempotent(fresh_engine):
    init_db()
    init_db()
    assert "users" in inspect(fresh_engine).get_table_names()


def test_check_db_connection(fresh_engine):
    assert check_db_connection() is True


def test_unconfigured_engine_raises(monkeypatch):
    monkeypatch.setattr(db_module, "engine", None)
    with pytest.raises(RuntimeError):
        db_module.get_engine()
