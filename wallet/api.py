from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from .config import get_settings
from .context import WalletContext, get_context
from .errors import AuthError, Forbidden, InternalError, WalletError
from .logging_config import setup_logging
from .schemas import (
    AccountRead, AdminDepositUpdate, AdminWithdrawalUpdate, BlockRequest, DepositDecision,
    DepositRead, DepositRequest, ErrorResponse, ReferralsResponse, WalletResponse,
    WithdrawalRead, WithdrawalReceipt, WithdrawalStatusChange, WithdrawRequest,
)
from .security import Identity, decode_token

bearer_scheme = HTTPBearer(auto_error=False)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(json=settings.log_json or settings.is_production)
    yield


app = FastAPI(
    title="Wallet Ledger API",
    description="Deposits, referral commissions and withdrawals with atomic balance updates",
    version="1.0.0",
    lifespan=lifespan,
    responses=ERROR_RESPONSES,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WalletError)
async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ())[1:])
        message = f"{field}: {errors[0].get('msg')}" if field else str(errors[0].get("msg"))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "validation_error", "message": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on {method} {path}", method=request.method, path=request.url.path)
    return await wallet_error_handler(request, InternalError("Internal server error"))


def get_identity(credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme)) -> Identity:
    if credentials is None:
        raise AuthError("Unauthorized")
    return decode_token(credentials.credentials)


def get_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_admin:
        raise Forbidden("Admin access required")
    return identity


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": "wallet-ledger"}


@app.get("/wallet", response_model=WalletResponse, tags=["Wallet"])
def get_wallet(
    identity: Identity = Depends(get_identity),
    ctx: WalletContext = Depends(get_context),
) -> WalletResponse:
    return WalletResponse(
        balances=ctx.withdrawals.balances(identity.user_id),
        deposits=ctx.deposits.list_deposits(identity.user_id),
    )


@app.post("/deposits", response_model=DepositRead, status_code=status.HTTP_201_CREATED, tags=["Wallet"])
def create_deposit(
    request: DepositRequest,
    identity: Identity = Depends(get_identity),
    ctx: WalletContext = Depends(get_context),
) -> DepositRead:
    return ctx.deposits.create_deposit(
        identity.user_id, request.amount, request.payment_method, request.transaction_id
    )


@app.post("/withdraw", response_model=WithdrawalReceipt, status_code=status.HTTP_201_CREATED, tags=["Withdrawals"])
def request_withdrawal(
    request: WithdrawRequest,
    identity: Identity = Depends(get_identity),
    ctx: WalletContext = Depends(get_context),
) -> WithdrawalReceipt:
    return ctx.withdrawals.request_withdrawal(
        identity.user_id,
        request.amount,
        request.method,
        request.account_details,
        request.bank_name,
    )


@app.get("/withdrawals", response_model=list[WithdrawalRead], tags=["Withdrawals"])
def list_my_withdrawals(
    identity: Identity = Depends(get_identity),
    ctx: WalletContext = Depends(get_context),
) -> list[WithdrawalRead]:
    return ctx.withdrawals.list_withdrawals(identity.user_id)


@app.get("/referrals", response_model=ReferralsResponse, tags=["Referrals"])
def get_referrals(
    identity: Identity = Depends(get_identity),
    ctx: WalletContext = Depends(get_context),
) -> ReferralsResponse:
    return ctx.commissions.referral_overview(identity.user_id)


@app.get("/admin/withdrawals", response_model=list[WithdrawalRead], tags=["Admin"])
def admin_list_withdrawals(
    admin: Identity = Depends(get_admin),
    ctx: WalletContext = Depends(get_context),
) -> list[WithdrawalRead]:
    return ctx.withdrawals.list_withdrawals()


@app.patch("/admin/withdrawals", response_model=WithdrawalStatusChange, tags=["Admin"])
def admin_update_withdrawal(
    request: AdminWithdrawalUpdate,
    admin: Identity = Depends(get_admin),
    ctx: WalletContext = Depends(get_context),
) -> WithdrawalStatusChange:
    logger.info("Admin {admin} sets withdrawal {withdrawal_id} to {status}",
                admin=admin.user_id, withdrawal_id=request.withdrawal_id, status=request.status)
    return ctx.withdrawals.set_withdrawal_status(
        request.withdrawal_id,
        request.status,
        transaction_id=request.transaction_id,
        rejected_reason=request.rejected_reason,
    )


@app.get("/admin/deposits", response_model=list[DepositRead], tags=["Admin"])
def admin_list_deposits(
    admin: Identity = Depends(get_admin),
    ctx: WalletContext = Depends(get_context),
) -> list[DepositRead]:
    return ctx.deposits.list_deposits()


@app.patch("/admin/deposits", response_model=DepositDecision, tags=["Admin"])
def admin_update_deposit(
    request: AdminDepositUpdate,
    admin: Identity = Depends(get_admin),
    ctx: WalletContext = Depends(get_context),
) -> DepositDecision:
    logger.info("Admin {admin} sets deposit {deposit_id} to {status}",
                admin=admin.user_id, deposit_id=request.deposit_id, status=request.status)
    return ctx.deposits.set_deposit_status(request.deposit_id, request.status)


@app.patch("/admin/users/{user_id}/block", response_model=AccountRead, tags=["Admin"])
def admin_block_user(
    user_id: UUID,
    request: BlockRequest,
    admin: Identity = Depends(get_admin),
    ctx: WalletContext = Depends(get_context),
) -> AccountRead:
    return ctx.accounts.set_blocked(user_id, request.is_blocked)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
