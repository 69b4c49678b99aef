import logging
from datetime import datetime

from .errors import InvalidProgress, ProgressNotInitialized
from .models import Progress
from .storage import MarketplaceStorage

logger = logging.getLogger(__name__)


def compute_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return completed * 100 // total


def is_refund_eligible(progress: Progress, threshold: int) -> bool:
    return progress.percent < threshold


def init_progress(storage: MarketplaceStorage, buyer: str, course_id: int, total: int, now: datetime) -> Progress:
    progress = Progress(completed=0, total=total, percent=0, updated_at=now)
    storage.progress[(buyer, course_id)] = progress
    return progress


def get_progress(storage: MarketplaceStorage, buyer: str, course_id: int) -> Progress:
    return storage.progress.get((buyer, course_id)) or Progress()


def update_progress(storage: MarketplaceStorage, buyer: str, course_id: int, completed: int, now: datetime) -> Progress:
    progress = storage.progress.get((buyer, course_id))
    if progress is None or progress.total == 0:
        raise ProgressNotInitialized(f"No progress for {buyer} on course {course_id}")
    if completed < 0 or completed > progress.total:
        raise InvalidProgress(f"Completed lessons {completed} outside 0..{progress.total}")

    progress.completed = completed
    progress.percent = compute_percent(completed, progress.total)
    progress.updated_at = now
    logger.debug("Progress for %s on course %s is now %s%%", buyer, course_id, progress.percent)
    return progress
