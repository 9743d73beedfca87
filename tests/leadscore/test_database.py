"""Tests for leadscore.database — URL and engine option handling."""
from leadscore.database import engine_options, normalize_database_url


def test_postgres_scheme_rewritten():
    assert normalize_database_url('postgres://u:p@db:5432/leads') == 'postgresql://u:p@db:5432/leads'


def test_postgresql_scheme_untouched():
    assert normalize_database_url('postgresql://db/leads') == 'postgresql://db/leads'


def test_sqlite_allows_cross_thread_sessions():
    assert engine_options('sqlite:///scoring.db') == {'connect_args': {'check_same_thread': False}}


def test_postgres_uses_pool_settings():
    opts = engine_options('postgresql://db/leads')
    assert opts['pool_pre_ping'] is True
    assert 'connect_args' not in opts
