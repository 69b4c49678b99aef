from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict


ZERO_ADDRESS = "0x" + "0" * 40
MAX_LESSONS = 2**96


class EventName(str, Enum):
    PURCHASE_COMPLETED = "PurchaseCompleted"
    REFERRAL_REWARD_PAID = "ReferralRewardPaid"
    REFUND_REQUESTED = "RefundRequested"
    REFUND_PROCESSED = "RefundProcessed"
    WITHDRAWAL = "Withdrawal"
    EARNINGS_UPDATED = "EarningsUpdated"
    FEE_CONFIG_UPDATED = "FeeConfigUpdated"
    PROGRESS_UPDATED = "ProgressUpdated"
    COURSE_CREATED = "CourseCreated"
    COURSE_UPDATED = "CourseUpdated"
    INSTRUCTOR_CERTIFIED = "InstructorCertified"
    INSTRUCTOR_REVOKED = "InstructorRevoked"
    REFERRER_SET = "ReferrerSet"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"


class RefundState(str, Enum):
    NOT_REQUESTED = "NOT_REQUESTED"
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class FeeConfig(BaseModel):
    seller_rate: int = Field(..., ge=0, le=100)
    platform_rate: int = Field(..., ge=0, le=100)
    referrer_rate: int = Field(default=0, ge=0, le=100)

    model_config = ConfigDict(frozen=True, json_schema_extra={
        "example": {"seller_rate": 80, "platform_rate": 15, "referrer_rate": 5}
    })

    @property
    def total(self) -> int:
        return self.seller_rate + self.platform_rate + self.referrer_rate

    @property
    def referrals_enabled(self) -> bool:
        return self.referrer_rate > 0


class Distribution(BaseModel):
    seller_amount: int
    platform_amount: int
    referrer_amount: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> int:
        return self.seller_amount + self.platform_amount + self.referrer_amount


class Course(BaseModel):
    id: int
    instructor: str
    title: str
    price: int
    total_lessons: int
    published: bool = True
    deleted: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PurchaseRecord(BaseModel):
    buyer: str
    course_id: int
    purchased: bool = False
    refunded: bool = False
    price_paid: int = 0
    purchased_at: Optional[datetime] = None
    seller_amount: int = 0
    platform_amount: int = 0
    referrer_amount: int = 0
    referrer: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Progress(BaseModel):
    completed: int = 0
    total: int = 0
    percent: int = 0
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class EarningsAccount(BaseModel):
    seller: str
    total_earned: int = 0
    withdrawn: int = 0
    pending: int = 0
    last_withdrawal_at: Optional[datetime] = None
    withdrawal_history: list[datetime] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    def is_balanced(self) -> bool:
        return self.total_earned == self.withdrawn + self.pending and self.pending >= 0


class ReferralEarnings(BaseModel):
    referrer: str
    total_rewarded: int = 0
    reward_count: int = 0


class RefundRequest(BaseModel):
    id: int
    course_id: int
    buyer: str
    amount: int
    seller_clawback: int
    requested_at: datetime
    processed: bool = False
    approved: bool = False

    model_config = ConfigDict(from_attributes=True)

    @property
    def state(self) -> RefundState:
        if not self.processed:
            return RefundState.REQUESTED
        return RefundState.APPROVED if self.approved else RefundState.DENIED


class RefundStatus(BaseModel):
    purchased: bool
    refunded: bool
    state: RefundState = RefundState.NOT_REQUESTED
    hold_time_met: bool
    within_window: bool
    progress_percent: int
    progress_ok: bool
    eligible: bool
    refund_amount: int = 0


class Event(BaseModel):
    name: EventName
    sequence: int
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class HealthReport(BaseModel):
    paused: bool
    escrow_balance: int
    total_pending: int
    solvent: bool
    purchases: int
    refunds: int
    fee_config: FeeConfig


# HTTP request bodies

class CallerRequest(BaseModel):
    caller: str = Field(..., description="Address of the account invoking the operation")


class CreateCourseRequest(CallerRequest):
    title: str
    price: int = Field(..., gt=0)
    total_lessons: int = Field(..., gt=0)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "caller": "0x1111111111111111111111111111111111111111",
            "title": "Intro to Solidity",
            "price": 100,
            "total_lessons": 10,
        }
    })


class UpdateCourseRequest(CallerRequest):
    title: str
    total_lessons: int = Field(..., gt=0)


class UpdatePriceRequest(CallerRequest):
    price: int = Field(..., gt=0)


class UpdateProgressRequest(CallerRequest):
    completed: int = Field(..., ge=0)


class CertifyRequest(CallerRequest):
    instructors: list[str]


class SetReferrerRequest(CallerRequest):
    referrer: str


class FeeConfigRequest(CallerRequest):
    fee_config: FeeConfig


class PurchaseResponse(BaseModel):
    purchase: PurchaseRecord
    distribution: Distribution
    message: str


class RefundResponse(BaseModel):
    request: RefundRequest
    earnings: EarningsAccount
    message: str


class WithdrawalResponse(BaseModel):
    amount: int
    earnings: EarningsAccount
    message: str


class EventHistoryResponse(BaseModel):
    events: list[Event]
    total_count: int
