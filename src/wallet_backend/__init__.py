"""Wallet Backend - a custodial wallet service for EVM chains.

Holds a single key in memory and signs, broadcasts and confirms native
transfers on request over HTTP.
"""

__version__ = "0.1.0"
