"""Retry policy for ingestion Celery tasks: exponential backoff with jitter.

:class:`BaseTaskWithRetry` retries unexpected errors (database or broker
outages, full disks) with per-attempt countdowns of 60 s, 300 s and 900 s by
default. Ingestion errors are outcomes, not outages, and are never retried.

Usage::

    @celery.task(base=BaseTaskWithRetry)
    def my_task(...):
        ...
"""

import logging
import random
from typing import Any

from celery import Task

from intake.ingestion.errors import IngestionError

logger = logging.getLogger(__name__)

#: Default per-retry countdowns in seconds (1 min, 5 min, 15 min).
DEFAULT_RETRY_DELAYS: list[int] = [60, 300, 900]


def _parse_delay_string(value: str) -> list[int]:
    """Parse ``"60,300,900"`` into ``[60, 300, 900]``."""
    return [int(v.strip()) for v in value.split(",") if v.strip()]


def compute_countdown(retries: int, base_delays: list[int] | None = None, jitter: bool = True) -> int:
    """Countdown in seconds before retry number ``retries`` (0-based).

    Past the end of ``base_delays`` the last delay doubles for every extra
    attempt. Jitter spreads the result by ±20 %; the result is at least 1 s.

    Examples::

        >>> compute_countdown(1, [60, 300, 900], jitter=False)
        300
        >>> compute_countdown(3, [60, 300, 900], jitter=False)
        1800
    """
    delays = base_delays if base_delays is not None else DEFAULT_RETRY_DELAYS

    if not delays:
        base = 60
    elif retries < len(delays):
        base = delays[retries]
    else:
        base = delays[-1] * (2 ** (retries - len(delays) + 1))

    if jitter:
        base = int(base * (1.0 + random.uniform(-0.2, 0.2)))  # noqa: S311

    return max(base, 1)


class BaseTaskWithRetry(Task):
    """Celery task base class with exponential backoff and optional jitter."""

    autoretry_for = (Exception,)
    dont_autoretry_for = (IngestionError,)
    max_retries: int = 3
    retry_kwargs: dict = {"max_retries": 3}

    #: Per-retry countdowns; ``None`` reads TASK_RETRY_DELAYS, then DEFAULT_RETRY_DELAYS.
    retry_delays: list[int] | None = None
    retry_jitter: bool = True

    def retry(
        self,
        args: Any = None,
        kwargs: Any = None,
        exc: BaseException | None = None,
        throw: bool = True,
        eta: Any = None,
        countdown: int | None = None,
        max_retries: int | None = None,
        **options: Any,
    ) -> Any:
        if countdown is None and eta is None:
            countdown = compute_countdown(
                retries=self.request.retries,
                base_delays=self._effective_retry_delays(),
                jitter=self.retry_jitter,
            )
            logger.warning(
                "Retry %d/%d for task %s in %d s: %r",
                self.request.retries + 1,
                max_retries if max_retries is not None else self.max_retries,
                self.name,
                countdown,
                exc,
            )

        return super().retry(
            args=args,
            kwargs=kwargs,
            exc=exc,
            throw=throw,
            eta=eta,
            countdown=countdown,
            max_retries=max_retries,
            **options,
        )

    def _effective_retry_delays(self) -> list[int]:
        if self.retry_delays is not None:
            return self.retry_delays

        from intake.config import settings

        if settings.task_retry_delays:
            return _parse_delay_string(settings.task_retry_delays)
        return DEFAULT_RETRY_DELAYS
