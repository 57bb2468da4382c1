#!/usr/bin/env python3
"""
Dividend Ledger Entry Point

Starts the FastAPI server using the DIVLEDGER_* configuration.
"""

import sys

from dividend_ledger.api import run_server
from dividend_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Dividend Ledger...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Dividend Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
