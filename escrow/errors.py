class MarketplaceError(Exception):
    pass


class PreconditionError(MarketplaceError):
    pass


class InvariantViolation(MarketplaceError):
    pass


class ReentrantCall(MarketplaceError):
    pass


class TransferFailed(MarketplaceError):
    pass


class NotFoundError(PreconditionError):
    pass


class CourseNotFound(NotFoundError):
    pass


class NotPurchased(NotFoundError):
    pass


class ProgressNotInitialized(NotFoundError):
    pass


class AlreadyPurchased(PreconditionError):
    pass


class SelfPurchase(PreconditionError):
    pass


class CourseNotPublished(PreconditionError):
    pass


class InsufficientBalance(PreconditionError):
    pass


class InsufficientEarnings(PreconditionError):
    pass


class CooldownActive(PreconditionError):
    pass


class AlreadyRefunded(PreconditionError):
    pass


class HoldTimeNotMet(PreconditionError):
    pass


class RefundWindowExpired(PreconditionError):
    pass


class ProgressTooHigh(PreconditionError):
    pass


class InvalidProgress(PreconditionError):
    pass


class InvalidFeeConfig(PreconditionError):
    pass


class InvalidPrice(PreconditionError):
    pass


class InvalidLessonCount(PreconditionError):
    pass


class InvalidTitle(PreconditionError):
    pass


class CourseHasActiveStudents(PreconditionError):
    pass


class Unauthorized(PreconditionError):
    pass


class NotCertifiedInstructor(Unauthorized):
    pass


class BatchSizeExceeded(PreconditionError):
    pass


class InvalidAddress(PreconditionError):
    pass


class ReferrerAlreadySet(PreconditionError):
    pass


class SelfReferral(PreconditionError):
    pass


class EnforcedPause(PreconditionError):
    pass


class ExpectedPause(PreconditionError):
    pass
