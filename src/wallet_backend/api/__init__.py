"""HTTP API for Wallet Backend."""

from wallet_backend.api.server import create_app, run_server

__all__ = ["create_app", "run_server"]
