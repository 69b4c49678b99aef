from typing import Optional

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import (
    AlreadyPurchased,
    EnforcedPause,
    InvariantViolation,
    MarketplaceError,
    NotFoundError,
    ReentrantCall,
    TransferFailed,
    Unauthorized,
)
from .models import (
    CallerRequest,
    CertifyRequest,
    Course,
    CreateCourseRequest,
    EarningsAccount,
    EventHistoryResponse,
    EventName,
    FeeConfig,
    FeeConfigRequest,
    HealthReport,
    Progress,
    PurchaseResponse,
    RefundResponse,
    RefundStatus,
    SetReferrerRequest,
    UpdateCourseRequest,
    UpdatePriceRequest,
    UpdateProgressRequest,
    WithdrawalResponse,
)
from .service import MarketplaceService
from .token import InMemoryToken


class MintRequest(CallerRequest):
    to: str
    amount: int = Field(..., gt=0)


class ApproveRequest(CallerRequest):
    amount: int = Field(..., ge=0)


class BalanceResponse(BaseModel):
    account: str
    balance: int
    allowance: int


def to_http_error(e: MarketplaceError) -> HTTPException:
    if isinstance(e, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, Unauthorized):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, AlreadyPurchased):
        code = status.HTTP_409_CONFLICT
    elif isinstance(e, EnforcedPause):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(e, TransferFailed):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(e, (InvariantViolation, ReentrantCall)):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail={"error": type(e).__name__, "message": str(e)})


def create_app(service: Optional[MarketplaceService] = None, token: Optional[InMemoryToken] = None, root_path: str = "") -> FastAPI:
    settings = get_settings()
    if service is None:
        token = token or InMemoryToken()
        service = MarketplaceService(token.connect(settings.escrow_address), settings)

    app = FastAPI(
        title="Course Escrow API",
        description="Escrow and settlement engine for course sales with deferred payout, refunds and withdrawals",
        version="1.0.0",
        root_path=root_path,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthReport, tags=["System"])
    def health_check() -> HealthReport:
        return service.health_check()

    @app.get("/events", response_model=EventHistoryResponse, tags=["System"])
    def get_events(limit: int = 50, offset: int = 0, name: Optional[EventName] = None) -> EventHistoryResponse:
        return service.get_events(limit, offset, name)

    # Courses

    @app.post("/courses", response_model=Course, status_code=status.HTTP_201_CREATED, tags=["Courses"])
    def create_course(request: CreateCourseRequest) -> Course:
        try:
            return service.create_course(request.caller, request.title, request.price, request.total_lessons)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.get("/courses/{course_id}", response_model=Course, tags=["Courses"])
    def get_course(course_id: int) -> Course:
        try:
            return service.get_course(course_id)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.put("/courses/{course_id}", response_model=Course, tags=["Courses"])
    def update_course(course_id: int, request: UpdateCourseRequest) -> Course:
        try:
            return service.update_course(request.caller, course_id, request.title, request.total_lessons)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.put("/courses/{course_id}/price", response_model=Course, tags=["Courses"])
    def update_price(course_id: int, request: UpdatePriceRequest) -> Course:
        try:
            return service.update_price(request.caller, course_id, request.price)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.post("/courses/{course_id}/publish", response_model=Course, tags=["Courses"])
    def publish_course(course_id: int, request: CallerRequest) -> Course:
        try:
            return service.publish_course(request.caller, course_id)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.post("/courses/{course_id}/unpublish", response_model=Course, tags=["Courses"])
    def unpublish_course(course_id: int, request: CallerRequest) -> Course:
        try:
            return service.unpublish_course(request.caller, course_id)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.post("/courses/{course_id}/delete", response_model=Course, tags=["Courses"])
    def delete_course(course_id: int, request: CallerRequest) -> Course:
        try:
            return service.delete_course(request.caller, course_id)
        except MarketplaceError as e:
            raise to_http_error(e)

    # Settlement

    @app.post("/courses/{course_id}/purchase", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED, tags=["Settlement"])
    def purchase_course(course_id: int, request: CallerRequest) -> PurchaseResponse:
        try:
            return service.purchase(request.caller, course_id)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.put("/courses/{course_id}/progress", response_model=Progress, tags=["Settlement"])
    def update_progress(course_id: int, request: UpdateProgressRequest) -> Progress:
        try:
            return service.update_progress(request.caller, course_id, request.completed)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.get("/courses/{course_id}/refund/{buyer}", response_model=RefundStatus, tags=["Settlement"])
    def refund_status(course_id: int, buyer: str) -> RefundStatus:
        return service.refund_status(buyer, course_id)

    @app.post("/courses/{course_id}/refund", response_model=RefundResponse, tags=["Settlement"])
    def request_refund(course_id: int, request: CallerRequest) -> RefundResponse:
        try:
            return service.request_refund(request.caller, course_id)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.get("/instructors/{instructor}/earnings", response_model=EarningsAccount, tags=["Settlement"])
    def get_earnings(instructor: str) -> EarningsAccount:
        return service.get_earnings(instructor)

    @app.post("/instructors/withdraw", response_model=WithdrawalResponse, tags=["Settlement"])
    def withdraw(request: CallerRequest) -> WithdrawalResponse:
        try:
            return service.withdraw(request.caller)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.post("/referrals", status_code=status.HTTP_204_NO_CONTENT, tags=["Settlement"])
    def set_referrer(request: SetReferrerRequest) -> None:
        try:
            service.set_referrer(request.caller, request.referrer)
        except MarketplaceError as e:
            raise to_http_error(e)

    # Administration

    @app.post("/instructors/certify", response_model=list[str], tags=["Admin"])
    def certify_instructors(request: CertifyRequest) -> list[str]:
        try:
            return service.batch_certify_instructors(request.caller, request.instructors)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.post("/admin/pause", status_code=status.HTTP_204_NO_CONTENT, tags=["Admin"])
    def pause(request: CallerRequest) -> None:
        try:
            service.pause(request.caller)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.post("/admin/unpause", status_code=status.HTTP_204_NO_CONTENT, tags=["Admin"])
    def unpause(request: CallerRequest) -> None:
        try:
            service.unpause(request.caller)
        except MarketplaceError as e:
            raise to_http_error(e)

    @app.put("/admin/fee-config", response_model=FeeConfig, tags=["Admin"])
    def set_fee_config(request: FeeConfigRequest) -> FeeConfig:
        try:
            return service.set_fee_config(request.caller, request.fee_config)
        except MarketplaceError as e:
            raise to_http_error(e)

    if token is not None:
        @app.post("/token/mint", response_model=BalanceResponse, tags=["Token"])
        def mint(request: MintRequest) -> BalanceResponse:
            if request.caller != service.platform:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the platform can mint")
            token.mint(request.to, request.amount)
            return BalanceResponse(
                account=request.to,
                balance=token.balance_of(request.to),
                allowance=token.allowance(request.to, service.escrow),
            )

        @app.post("/token/approve", response_model=BalanceResponse, tags=["Token"])
        def approve(request: ApproveRequest) -> BalanceResponse:
            if request.caller == service.escrow:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": "InvalidAddress", "message": "The escrow account cannot grant allowances"},
                )
            token.approve(request.caller, service.escrow, request.amount)
            return BalanceResponse(
                account=request.caller,
                balance=token.balance_of(request.caller),
                allowance=token.allowance(request.caller, service.escrow),
            )

    return app


app = create_app(token=InMemoryToken())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
