#!/usr/bin/env python3
"""
Bank Ledger Entry Point

Starts the FastAPI server with the configured ledger store.
"""

import sys

import uvicorn

from bank_ledger.api import create_app
from bank_ledger.api.auth import BankingSystem
from bank_ledger.config import get_config, validate_config
from bank_ledger.logging_config import setup_logging
from bank_ledger.seed import seed_database


def main() -> None:
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format)

    for warning in validate_config(config):
        logger.warning(f"Configuration warning: {warning}")

    system = BankingSystem(config)
    if config.seed_on_startup:
        seed_database(system)

    app = create_app(system)

    print("Starting Bank Ledger API...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")

    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level=config.log_level.lower())


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nShutting down Bank Ledger API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
