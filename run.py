#!/usr/bin/env python3
"""
minibank Entry Point

Starts the API server with configuration read from the environment
(MINIBANK_* and DB_* variables, or a .env file).
"""

import sys

from minibank.api import run_server
from minibank.config import get_config


if __name__ == "__main__":
    config = get_config()
    if not config.jwt_secret:
        print("MINIBANK_JWT_SECRET must be set to sign session tokens", file=sys.stderr)
        sys.exit(1)

    print(f"Starting minibank API on http://{config.api_host}:{config.api_port}")
    print(f"Storage backend: {config.storage_backend}")

    try:
        run_server(config)
    except KeyboardInterrupt:
        print("\nShutting down minibank...")
