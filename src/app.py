import os
import time
import traceback
import uuid
import jwt
import asyncio
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from core.audit import LogAuditSink
from core.base_utils import BaseUtils, TransferRequest
from core.config import setting
from core.deploy import DeploymentRecord, bootstrap
from core.exceptions import DisbursementError, LedgerError
from core.utils import format_ether
from schema import (
    AuditEventResponse,
    BalanceResponse,
    DepositRequest,
    DepositResponse,
    DisbursementRequest,
    DisbursementResponse,
    GasCostResponse,
    NetworkInfoResponse,
)

# Create a semaphore with a value of 1 (only one request at a time)
# State-changing calls run to completion one after another
request_semaphore = asyncio.Semaphore(1)

async def get_semaphore():
    async with request_semaphore:
        yield

# Rate limiter setup
limiter = Limiter(key_func=get_remote_address)

# Initialize FastAPI app
app = FastAPI(
    title="BaseUtils API",
    description="Batch disbursement and network utilities for Base",
    version="1.0.0"
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Security bearer token scheme
security = HTTPBearer()


async def get_contract() -> BaseUtils:
    """Get the deployed component, deploying it on first use"""
    if getattr(app.state, "contract", None) is None:
        contract, record = bootstrap(setting, sinks=[LogAuditSink()])
        app.state.contract = contract
        app.state.deployment = record
    return app.state.contract


def remember_token(used_tokens: dict, jti: str, exp, limit: int, now: float | None = None):
    """
    Record a spent token id, keeping at most ``limit`` entries.

    Expired ids are dropped first since the signature check already refuses their
    tokens; only then are the oldest ids evicted.
    """
    now = time.time() if now is None else now
    used_tokens[jti] = exp
    if len(used_tokens) <= limit:
        return
    for spent, expires in list(used_tokens.items()):
        if expires is not None and expires <= now:
            del used_tokens[spent]
    while len(used_tokens) > limit:
        oldest = next(iter(used_tokens))
        logger.info(f"Evicting oldest used token {oldest} to stay within {limit} entries")
        del used_tokens[oldest]


# JWT validation function
def verify_jwt_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    if not setting.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is not configured")
        raise HTTPException(status_code=401, detail="Authentication is not configured")
    try:
        token = credentials.credentials

        # Decode and verify the JWT
        payload = jwt.decode(
            token,
            setting.JWT_SECRET_KEY,
            algorithms=[setting.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True}
        )

        # Verify token has not been used before (nonce check)
        if "jti" in payload:
            jti = payload["jti"]

            if not hasattr(app.state, "used_tokens"):
                app.state.used_tokens = {}
            if jti in app.state.used_tokens:
                logger.warning(f"Token reuse detected: {jti}")
                raise HTTPException(status_code=401, detail="Token has been used before")

            # Mark this token as used
            remember_token(app.state.used_tokens, jti, payload.get("exp"), setting.MAX_USED_TOKENS)

        return payload
    except HTTPException:
        raise
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        raise HTTPException(
            status_code=401,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError as e:
        logger.error(f"Invalid token: {str(e)}")
        raise HTTPException(
            status_code=401,
            detail=f"Invalid token: {str(e)}"
        )


# Middleware for request validation and logging
@app.middleware("http")
async def validate_request(request: Request, call_next):
    # Record request time for monitoring
    start_time = time.time()
    request_id = str(uuid.uuid4())

    # Add request_id to request state for logging
    request.state.request_id = request_id

    # Log the incoming request
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Request {request_id}: {request.method} {request.url.path} from {client_host}")

    # Process the request
    try:
        response = await call_next(request)

        # Log response details
        process_time = time.time() - start_time
        status_code = response.status_code
        logger.info(
            f"Response {request_id}: Status {status_code}, "
            f"Completed in {process_time:.3f}s"
        )

        # Add request ID to response headers for tracing
        response.headers["X-Request-ID"] = request_id

        return response
    except Exception as e:
        # Log any unhandled exceptions
        process_time = time.time() - start_time
        logger.error(
            f"Error {request_id}: {str(e)}, "
            f"Occurred after {process_time:.3f}s"
        )
        raise


# API endpoints
@app.post("/api/v1/disbursements", response_model=DisbursementResponse)
@limiter.limit("60/minute")  # Rate limiting
async def process_disbursement(
    disbursement: DisbursementRequest,
    request: Request,
    payload: dict = Depends(verify_jwt_token),
    contract: BaseUtils = Depends(get_contract),
    dependencies = Depends(get_semaphore)
):
    """Send value to several recipients in one all-or-nothing call"""
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    logger.info(f"Processing disbursement: {request_id}, Transaction ID: {disbursement.transaction_id}")

    transfer = TransferRequest(recipients=disbursement.recipients, amounts=disbursement.amounts)
    try:
        events = contract.batch_transfer(transfer, contract.context(disbursement.sender, disbursement.value))
    except DisbursementError as exc:
        logger.warning(f"Disbursement {disbursement.transaction_id} aborted: {exc.code}: {exc}")
        return DisbursementResponse(
            transaction_id=disbursement.transaction_id,
            status="error",
            message=str(exc),
            error=exc.code
        )
    except Exception as exc:
        logger.error(
            f"Unhandled exception performing disbursement: {exc}\n{traceback.format_exc()}"
        )
        return DisbursementResponse(
            transaction_id=disbursement.transaction_id,
            status="error",
            message="Unhandled exception"
        )

    return DisbursementResponse(
        transaction_id=disbursement.transaction_id,
        status="success",
        message="Disbursement processed successfully",
        events=[AuditEventResponse(**vars(event)) for event in events]
    )


@app.post("/api/v1/deposits", response_model=DepositResponse)
@limiter.limit("60/minute")
async def process_deposit(
    deposit: DepositRequest,
    request: Request,
    payload: dict = Depends(verify_jwt_token),
    contract: BaseUtils = Depends(get_contract),
    dependencies = Depends(get_semaphore)
):
    """Send value straight to the component's account"""
    logger.info(f"Processing deposit: Transaction ID: {deposit.transaction_id}")
    try:
        receipt = contract.ledger.send_value(deposit.sender, contract.address, deposit.amount)
    except LedgerError as exc:
        logger.warning(f"Deposit {deposit.transaction_id} failed: {exc}")
        return DepositResponse(
            transaction_id=deposit.transaction_id,
            status="error",
            message=str(exc)
        )

    return DepositResponse(
        transaction_id=deposit.transaction_id,
        status="success",
        message="Deposit received",
        block_number=receipt.block_number
    )


@app.get("/api/v1/network", response_model=NetworkInfoResponse)
@limiter.limit("120/minute")
async def network_info(request: Request, contract: BaseUtils = Depends(get_contract)):
    return NetworkInfoResponse(**vars(contract.get_network_info()))


@app.get("/api/v1/balance", response_model=BalanceResponse)
@limiter.limit("120/minute")
async def balance(request: Request, contract: BaseUtils = Depends(get_contract)):
    amount = contract.get_balance()
    return BalanceResponse(address=contract.address, balance=amount, balance_in_ether=format_ether(amount))


@app.get("/api/v1/gas-cost", response_model=GasCostResponse)
@limiter.limit("120/minute")
async def gas_cost(
    request: Request,
    gas_used: int = Query(ge=0),
    gas_price: int = Query(ge=0),
    contract: BaseUtils = Depends(get_contract)
):
    try:
        cost = contract.calculate_gas_cost(gas_used, gas_price)
    except DisbursementError as exc:
        raise HTTPException(status_code=422, detail=f"{exc.code}: {exc}")
    return GasCostResponse(gas_used=gas_used, gas_price=gas_price, cost=cost)


@app.get("/api/v1/events", response_model=list[AuditEventResponse])
@limiter.limit("120/minute")
async def audit_events(request: Request, contract: BaseUtils = Depends(get_contract)):
    return [AuditEventResponse(**vars(event)) for event in contract.audit_trail]


@app.get("/api/v1/deployment", response_model=DeploymentRecord)
@limiter.limit("120/minute")
async def deployment(request: Request, contract: BaseUtils = Depends(get_contract)):
    return app.state.deployment


if __name__ == "__main__":
    # Launch the FastAPI app
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=False)
