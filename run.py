#!/usr/bin/env python3
"""
Installment Ledger Entry Point

Starts the FastAPI server with the installment ledger.
"""

import sys

from installment_ledger.api import run_server
from installment_ledger.config import get_config
from installment_ledger.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, config.log_file)

    print("Starting Installment Ledger...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down Installment Ledger...")
    except Exception as e:
        logger.exception("Server failed to start")
        print(f"Error starting server: {e}")
        sys.exit(1)
