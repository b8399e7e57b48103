import pytest

from ecotrack.config import Settings
from ecotrack.utils.text import clean_note, normalize_phone_number


def test_database_url_preferred():
    settings = Settings(DATABASE_URL="postgresql://u:p@db:5432/eco", PGHOST="ignored")
    assert settings.get_database_url() == "postgresql://u:p@db:5432/eco"


def test_database_url_built_from_pg_vars():
    settings = Settings(
        database_url=None,
        pghost="db",
        pgport=6543,
        pguser="eco",
        pgpassword="secret",
        pgdatabase="ledger",
    )
    assert settings.get_database_url() == "postgresql://eco:secret@db:6543/ledger"


def test_database_url_missing_raises():
    settings = Settings(database_url=None, pghost=None, pguser=None, pgpassword=None, pgdatabase=None)
    with pytest.raises(ValueError):
        settings.get_database_url()


def test_env_aliases(monkeypatch):
    monkeypatch.setenv("AGENT_POINTS_PER_COLLECTION", "12")
    monkeypatch.setenv("LEADERBOARD_REFRESH_SECONDS", "5")
    settings = Settings()
    assert settings.agent_points_per_collection == 12
    assert settings.leaderboard_refresh_seconds == 5


def test_phone_normalization():
    assert normalize_phone_number("+91 98765 43210") == "+919876543210"
    assert normalize_phone_number("9876543210") == "9876543210"
    assert normalize_phone_number("98765") is None
    assert normalize_phone_number("") is None
    assert normalize_phone_number(None) is None


def test_clean_note():
    assert clean_note("  moved \n to  depot ") == "moved to depot"
    assert clean_note("   ") is None
    assert clean_note("x" * 600) == "x" * 500
