"""Shared pytest fixtures for wallet-os tests."""

import pytest
from datasette.app import Datasette

from datasette_wallet_os.migrations import run_migrations
from wallet_enrich.config import EnrichConfig, LLMConfig
from wallet_enrich.models import SubscriptionDatabase, SubscriptionInput


@pytest.fixture
def db_path(tmp_path):
    """Create a temporary database with full schema via migrations.

    This is the canonical way to get a test database - uses the same
    migration system as production.
    """
    db_file = tmp_path / "test_wallet.db"
    run_migrations(db_file)
    return db_file


@pytest.fixture
def enrich_config(tmp_path, db_path):
    """Config pointing every on-disk resource at tmp_path, with no LLM key."""
    config = EnrichConfig(
        db_path=db_path,
        prompts_path=tmp_path / "prompts.json",
    )
    config.icons.cache_dir = tmp_path / "icons"
    config.llm = LLMConfig(api_key=None, api_key_env=None)
    return config


@pytest.fixture
def seeded_db(db_path):
    """Database with one monthly and one lifetime subscription."""
    db = SubscriptionDatabase(db_path)
    db.insert(
        SubscriptionInput(
            name="Netflix",
            price=15.99,
            currency="USD",
            frequency=1,
            next_payment="2024-07-01",
            start_date="2024-06-01",
        )
    )
    db.insert(SubscriptionInput(name="JetBrains Lifetime", price=199.0, frequency=0))
    return db


@pytest.fixture
def datasette(tmp_path, db_path):
    """Create a Datasette instance with the plugin configured.

    Uses config= (not metadata=) for Datasette v1 compatibility.
    The LLM key env var is unset so enrichment runs on heuristics.
    """
    return Datasette(
        [str(db_path)],
        config={
            "plugins": {
                "datasette-wallet-os": {
                    "db_path": str(db_path),
                    "prompts_path": str(tmp_path / "prompts.json"),
                    "icons": {"cache_dir": str(tmp_path / "icons")},
                    "llm": {"api_key_env": "WALLET_OS_TEST_UNSET_KEY"},
                }
            },
        },
    )
