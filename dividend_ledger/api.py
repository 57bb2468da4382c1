"""
FastAPI REST API Module

Exposes the dividend token operations over HTTP. Amounts travel as decimal
integer strings so 256-bit values survive JSON clients.
"""

from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from . import __version__
from .amounts import parse_amount
from .config import get_config
from .errors import InvalidIndex, LedgerError, TransferFailed
from .logging_config import setup_logging, get_logger
from .token import DividendToken, build_token


logger = get_logger("dividend_ledger.api")


# Pydantic models for API requests
class MintRequest(BaseModel):
    caller: str
    value: str = Field(..., description="Deposited native units as integer string")


class BurnRequest(BaseModel):
    caller: str
    destination: str


class TransferRequest(BaseModel):
    caller: str
    to: str
    amount: str = Field(..., description="Integer string")


class TransferFromRequest(BaseModel):
    caller: str
    owner: str
    to: str
    amount: str = Field(..., description="Integer string")


class ApproveRequest(BaseModel):
    caller: str
    spender: str
    amount: str = Field(..., description="Integer string")


class RecordDividendRequest(BaseModel):
    value: str = Field(..., description="Distributed native units as integer string")
    caller: Optional[str] = None


class WithdrawDividendRequest(BaseModel):
    caller: str
    destination: str


def _status_for(error: LedgerError) -> int:
    if isinstance(error, InvalidIndex):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, TransferFailed):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


def get_token(request: Request) -> DividendToken:
    return request.app.state.token


def create_app(token: Optional[DividendToken] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        token: Token to serve; built from configuration when omitted
    """
    app = FastAPI(
        title="Dividend Ledger API",
        description="Value-backed ledger with proportional dividend accrual",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.token = token or build_token()

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc}")
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": exc.code, "message": str(exc)}
        )

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/mint", status_code=status.HTTP_201_CREATED)
    def mint(request: MintRequest, token: DividendToken = Depends(get_token)):
        """Deposit native units and mint the same balance"""
        balance = token.mint(request.caller, parse_amount(request.value, "value", token.max_amount))
        return {"account": request.caller, "balance": str(balance)}

    @app.post("/burn")
    def burn(request: BurnRequest, token: DividendToken = Depends(get_token)):
        """Redeem the caller's whole balance"""
        amount = token.burn(request.caller, request.destination)
        return {"account": request.caller, "amount": str(amount), "destination": request.destination}

    @app.post("/transfer")
    def transfer(request: TransferRequest, token: DividendToken = Depends(get_token)):
        amount = parse_amount(request.amount, "amount", token.max_amount)
        token.transfer(request.caller, request.to, amount)
        return {"from": request.caller, "to": request.to, "amount": str(amount)}

    @app.post("/transfer-from")
    def transfer_from(request: TransferFromRequest, token: DividendToken = Depends(get_token)):
        amount = parse_amount(request.amount, "amount", token.max_amount)
        token.transfer_from(request.caller, request.owner, request.to, amount)
        return {
            "from": request.owner,
            "to": request.to,
            "amount": str(amount),
            "allowance": str(token.allowance(request.owner, request.caller))
        }

    @app.post("/approve")
    def approve(request: ApproveRequest, token: DividendToken = Depends(get_token)):
        amount = parse_amount(request.amount, "amount", token.max_amount)
        token.approve(request.caller, request.spender, amount)
        return {"owner": request.caller, "spender": request.spender, "amount": str(amount)}

    @app.get("/balances/{account}")
    def balance_of(account: str, token: DividendToken = Depends(get_token)):
        return {"account": account, "balance": str(token.balance_of(account))}

    @app.get("/allowances/{owner}/{spender}")
    def allowance(owner: str, spender: str, token: DividendToken = Depends(get_token)):
        return {"owner": owner, "spender": spender, "amount": str(token.allowance(owner, spender))}

    @app.get("/supply")
    def supply(token: DividendToken = Depends(get_token)):
        return {"total_supply": str(token.total_supply()), "reserve": str(token.reserve())}

    @app.get("/holders/count")
    def holder_count(token: DividendToken = Depends(get_token)):
        return {"count": token.get_num_token_holders()}

    @app.get("/holders/{index}")
    def holder_at(index: int, token: DividendToken = Depends(get_token)):
        """Holder at a 1-based position (unstable across mutations)"""
        return {"index": index, "account": token.get_token_holder(index)}

    @app.post("/dividends", status_code=status.HTTP_201_CREATED)
    def record_dividend(request: RecordDividendRequest, token: DividendToken = Depends(get_token)):
        """Distribute native units across current holders"""
        distribution = token.record_dividend(
            parse_amount(request.value, "value", token.max_amount), caller=request.caller
        )
        return {
            "amount": str(distribution.amount),
            "total_supply": str(distribution.total_supply),
            "holder_count": distribution.holder_count,
            "allocated": str(distribution.allocated),
            "credits": {account: str(share) for account, share in distribution.credits.items()}
        }

    @app.get("/dividends/{account}")
    def withdrawable_dividend(account: str, token: DividendToken = Depends(get_token)):
        return {"account": account, "withdrawable": str(token.get_withdrawable_dividend(account))}

    @app.post("/dividends/withdraw")
    def withdraw_dividend(request: WithdrawDividendRequest, token: DividendToken = Depends(get_token)):
        amount = token.withdraw_dividend(request.caller, request.destination)
        return {"account": request.caller, "amount": str(amount), "destination": request.destination}

    @app.get("/integrity")
    def integrity(token: DividendToken = Depends(get_token)):
        """Reconcile ledger invariants and the audit chain"""
        report = token.verify_invariants()
        report = {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v for k, v in report.items()}
        if token.audit_trail:
            report["audit"] = token.audit_trail.verify_integrity()
        return report

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    uvicorn.run(
        create_app(),
        host=host or config.api_host,
        port=port or config.api_port,
        log_level="debug" if debug else "info"
    )
