import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import EnforcedPause, ExpectedPause, ReentrantCall
from .storage import MarketplaceStorage

logger = logging.getLogger(__name__)


class ReentrancyGuard:
    """Rejects any guarded call while another guarded call is executing."""

    def __init__(self):
        self._active: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._active is not None

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        if self._active is not None:
            logger.warning("Reentrant call to %s while %s is executing", operation, self._active)
            raise ReentrantCall(f"{operation} called while {self._active} is executing")
        self._active = operation
        logger.debug("guard acquired by %s", operation)
        try:
            yield
        finally:
            self._active = None


def require_not_paused(storage: MarketplaceStorage) -> None:
    if storage.paused:
        raise EnforcedPause("Marketplace is paused")


def require_paused(storage: MarketplaceStorage) -> None:
    if not storage.paused:
        raise ExpectedPause("Marketplace is not paused")
