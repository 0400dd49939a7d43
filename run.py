#!/usr/bin/env python3
"""
Ornament Loan Management System Entry Point

Starts the FastAPI server with the settings from the OLMS_* environment.
"""

import sys

from olms.api import run_server
from olms.config import get_config
from olms.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)

    print("Starting Ornament Loan Management System...")
    print(f"Database: {config.database_url}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\nShutting down Ornament Loan Management System...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
