"""Custodial wallet core for Wallet Backend.

Provides a single-key signer, a Web3 chain client, the transfer
orchestrator with its destination/amount resolution policies, an in-memory
earnings ledger and a pluggable USD price oracle, tied together by
``wallet.service.WalletService``.
"""
