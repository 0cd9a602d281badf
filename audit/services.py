from contextlib import contextmanager
import logging

from .models import OperationLog

logger = logging.getLogger(__name__)


@contextmanager
def record_operation(operation, **initial):
    """
    Open an OperationLog for a multi-step flow.

    Yields the log so the caller can ``record_step`` after each write that
    succeeded. If the block raises, the log is marked failed with whatever
    steps were already recorded and the exception propagates; nothing is
    rolled back.
    """
    log = OperationLog.objects.create(operation=operation)
    if initial:
        log.record_step('start', **initial)
    try:
        yield log
    except Exception as exc:
        logger.error(
            f"Operation {operation} (log {log.pk}) failed after {len(log.steps)} step(s): {exc}"
        )
        log.mark_failed(exc)
        raise
    else:
        log.mark_completed()
        logger.info(f"Operation {operation} (log {log.pk}) completed with {len(log.steps)} step(s)")
