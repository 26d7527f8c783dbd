"""FastAPI application exposing the custodial wallet over HTTP."""

from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wallet_backend.api.schemas import (
    CreditEarningsBody,
    EstimateGasBody,
    SignMessageBody,
    TreasuryTransferBody,
    WithdrawBody,
)
from wallet_backend.exceptions import WalletServiceError
from wallet_backend.wallet.service import WalletService

logger = logging.getLogger("wallet_backend.api")

ENDPOINTS = [
    "/withdraw",
    "/convert-earnings-to-eth",
    "/fund-from-earnings",
    "/withdraw-profits-to-treasury",
    "/claim-mev-profits",
    "/credit-earnings",
    "/earnings",
    "/balance",
    "/estimate-gas",
    "/sign-message",
    "/transaction/{hash}",
]


def _package_version(name: str) -> Optional[str]:
    try:
        return version(name)
    except PackageNotFoundError:
        return None


def get_service(request: Request) -> WalletService:
    return request.app.state.service


# ------------------------------------------------------------------
# Error handlers
# ------------------------------------------------------------------


async def _service_error_handler(request: Request, exc: WalletServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
    return JSONResponse(status_code=400, content={"error": f"Invalid request body: {detail}"})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} crashed")
    return JSONResponse(status_code=500, content={"error": str(exc)})


# ------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------


def create_app(service: WalletService, cors_origins: list[str] | None = None) -> FastAPI:
    """Build the API around an already-constructed :class:`WalletService`."""
    app = FastAPI(title="Wallet Backend")
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(WalletServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    # --------------------------------------------------------------
    # Transfers
    # --------------------------------------------------------------

    @app.post("/withdraw")
    def withdraw(body: Optional[WithdrawBody] = None, svc: WalletService = Depends(get_service)):
        body = body or WithdrawBody()
        return svc.run_policy("withdraw", body.model_dump(exclude_none=True))

    @app.post("/convert-earnings-to-eth")
    def convert_earnings(
        body: Optional[TreasuryTransferBody] = None, svc: WalletService = Depends(get_service)
    ):
        body = body or TreasuryTransferBody()
        return svc.run_policy("convert-earnings", body.model_dump(exclude_none=True))

    @app.post("/fund-from-earnings")
    def fund_from_earnings(
        body: Optional[TreasuryTransferBody] = None, svc: WalletService = Depends(get_service)
    ):
        body = body or TreasuryTransferBody()
        return svc.run_policy("fund-from-earnings", body.model_dump(exclude_none=True))

    @app.post("/withdraw-profits-to-treasury")
    def withdraw_profits(
        body: Optional[TreasuryTransferBody] = None, svc: WalletService = Depends(get_service)
    ):
        body = body or TreasuryTransferBody()
        return svc.run_policy("withdraw-profits", body.model_dump(exclude_none=True))

    @app.post("/claim-mev-profits")
    def claim_mev_profits(
        body: Optional[TreasuryTransferBody] = None, svc: WalletService = Depends(get_service)
    ):
        body = body or TreasuryTransferBody()
        return svc.run_policy("claim-mev-profits", body.model_dump(exclude_none=True))

    # --------------------------------------------------------------
    # Signing and read-only queries
    # --------------------------------------------------------------

    @app.post("/sign-message")
    def sign_message(body: Optional[SignMessageBody] = None, svc: WalletService = Depends(get_service)):
        return svc.sign_message((body or SignMessageBody()).message)

    @app.get("/transaction/{tx_hash}")
    def transaction(tx_hash: str, svc: WalletService = Depends(get_service)):
        return svc.get_transaction_status(tx_hash)

    @app.get("/balance")
    def balance(svc: WalletService = Depends(get_service)):
        return svc.get_balance()

    @app.post("/estimate-gas")
    def estimate_gas(body: Optional[EstimateGasBody] = None, svc: WalletService = Depends(get_service)):
        body = body or EstimateGasBody()
        return svc.estimate_transfer_cost(body.toAddress, body.amountETH)

    # --------------------------------------------------------------
    # Earnings
    # --------------------------------------------------------------

    @app.post("/credit-earnings")
    def credit_earnings(
        body: Optional[CreditEarningsBody] = None, svc: WalletService = Depends(get_service)
    ):
        body = body or CreditEarningsBody()
        total = svc.credit_earnings(body.amountUSD, body.source)
        return {"success": True, "newBalance": total}

    @app.get("/earnings")
    def earnings(svc: WalletService = Depends(get_service)):
        return svc.read_earnings()

    # --------------------------------------------------------------
    # Liveness
    # --------------------------------------------------------------

    @app.get("/status")
    def status(svc: WalletService = Depends(get_service)):
        return {
            "status": "online",
            "wallet": svc.address,
            "chain": svc.client.chain.name,
            "endpoints": ENDPOINTS,
        }

    @app.get("/health")
    def health(svc: WalletService = Depends(get_service)):
        return {
            "status": "online",
            "wallet": svc.address,
            "chainId": svc.client.chain_id,
            "web3Version": _package_version("web3"),
        }

    return app


# ------------------------------------------------------------------
# Runner
# ------------------------------------------------------------------


def run_server(
    service: WalletService,
    host: str = "0.0.0.0",
    port: int = 3000,
    cors_origins: list[str] | None = None,
    log_level: str = "info",
) -> None:
    app = create_app(service, cors_origins=cors_origins)
    logger.info(f"Wallet backend online on {host}:{port} (wallet {service.address})")
    uvicorn.run(app, host=host, port=port, log_level=log_level)
