"""
Tests for configuration, structured logging and seed provisioning
"""

import json
import logging

import pytest

from bank_ledger import config as config_module
from bank_ledger.config import LedgerConfig, validate_config, reload_config, get_config
from bank_ledger.logging_config import JSONFormatter, TextFormatter, setup_logging, log_action
from bank_ledger.api.auth import BankingSystem
from bank_ledger.seed import seed_database, SEED_CUSTOMERS, DEFAULT_PASSWORD
from bank_ledger.storage import InMemoryLedgerStore, SQLiteLedgerStore


STRONG_SECRET = "x" * 40


class TestLedgerConfig:
    """Test settings loading and validation"""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("BANK_API_PORT", raising=False)
        settings = LedgerConfig(_env_file=None)
        assert settings.api_port == 3000
        assert settings.transfer_max_retries == 5
        assert settings.database_url.startswith("sqlite://")

    def test_environment_overrides(self, monkeypatch):
        """BANK_ prefixed variables override defaults"""
        monkeypatch.setenv("BANK_DATABASE_URL", "memory://")
        monkeypatch.setenv("BANK_API_PORT", "8080")
        monkeypatch.setenv("BANK_SEED_ON_STARTUP", "true")
        monkeypatch.setattr(config_module, "config", config_module.config)

        settings = reload_config()

        assert get_config() is settings
        assert settings.database_url == "memory://"
        assert settings.api_port == 8080
        assert settings.seed_on_startup is True

    def test_valid_config_has_no_warnings(self):
        settings = LedgerConfig(_env_file=None, database_url="memory://", jwt_secret=STRONG_SECRET)
        assert validate_config(settings) == []

    @pytest.mark.parametrize("overrides,fragment", [
        ({"jwt_secret": "short"}, "jwt_secret"),
        ({"database_url": "mysql://localhost/bank"}, "database_url"),
        ({"transfer_max_retries": 0}, "transfer_max_retries"),
        ({"log_format": "xml"}, "log_format"),
        ({"postgres_pool_size": 0}, "postgres_pool_size"),
    ])
    def test_warnings(self, overrides, fragment):
        values = {"database_url": "memory://", "jwt_secret": STRONG_SECRET}
        values.update(overrides)
        warnings = validate_config(LedgerConfig(_env_file=None, **values))
        assert len(warnings) == 1
        assert fragment in warnings[0]


class TestStructuredLogging:
    """Test the JSON formatter and log_action"""

    def test_json_formatter(self):
        record = logging.LogRecord("bank_ledger.test", logging.INFO, __file__, 1, "hello", (), None)
        record.action = "transfer"
        record.extra = {"amount": "10"}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "INFO"
        assert entry["message"] == "hello"
        assert entry["logger"] == "bank_ledger.test"
        assert entry["action"] == "transfer"
        assert entry["extra"] == {"amount": "10"}
        assert "user_id" not in entry

    def test_text_formatter_appends_fields(self):
        record = logging.LogRecord("bank_ledger.test", logging.INFO, __file__, 1, "Transfer completed", (), None)
        record.action = "transfer"
        record.extra = {"amount": "10"}

        line = TextFormatter().format(record)

        assert "Transfer completed" in line
        assert line.endswith("[action=transfer amount=10]")

    def test_unknown_format_falls_back_to_json(self):
        logger = setup_logging("INFO", fmt="xml", logger_name="ledger_tests.fallback")
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("DEBUG", logger_name="ledger_tests.setup")
        logger = setup_logging("WARNING", fmt="text", logger_name="ledger_tests.setup")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, TextFormatter)
        assert logger.level == logging.WARNING
        assert logger.propagate is False

    def test_log_action_attaches_fields(self, caplog):
        logger = logging.getLogger("ledger_tests.action")
        with caplog.at_level(logging.INFO, logger="ledger_tests.action"):
            log_action(
                logger, "info", "Transfer completed",
                user_id="7", action="transfer", resource="transfer:1",
                extra={"amount": "5"}
            )

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.getMessage() == "Transfer completed"
        assert record.user_id == "7"
        assert record.action == "transfer"
        assert record.resource == "transfer:1"
        assert record.extra == {"amount": "5"}

    def test_log_action_respects_level(self, caplog):
        logger = logging.getLogger("ledger_tests.level")
        with caplog.at_level(logging.WARNING, logger="ledger_tests.level"):
            log_action(logger, "info", "ignored")
        assert caplog.records == []


class TestSeed:
    """Test first-run provisioning"""

    def make_system(self, storage):
        config = LedgerConfig(_env_file=None, database_url="memory://", jwt_secret=STRONG_SECRET)
        return BankingSystem(config, storage=storage)

    def test_seed_creates_customers_and_employees(self):
        system = self.make_system(InMemoryLedgerStore())
        summary = seed_database(system)

        assert sorted(summary["customers"]) == sorted(SEED_CUSTOMERS)
        assert summary["employees"] == ["employee1", "manager1"]
        assert system.storage.count("customers") == 4
        assert system.storage.count("employees") == 2
        assert system.storage.count("accounts") == 0

        manager = system.authenticator.authenticate("manager1", DEFAULT_PASSWORD)
        assert manager.role == "manager"

    def test_seed_is_idempotent(self):
        system = self.make_system(SQLiteLedgerStore())
        try:
            first = seed_database(system)
            second = seed_database(system)

            assert first["customers"] == second["customers"]
            assert system.storage.count("customers") == 4
            assert system.storage.count("employees") == 2
        finally:
            system.close()
