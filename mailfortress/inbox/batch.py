"""Bounded-concurrency fan-out for per-email LLM calls."""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from mailfortress.config import BATCH_MAX_WORKERS
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchOutcome(Generic[T, R]):
    item: T
    result: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], R],
    max_workers: int = BATCH_MAX_WORKERS,
    name: str = "batch",
) -> list[BatchOutcome[T, R]]:
    """
    Run ``worker`` over ``items`` with at most ``max_workers`` in flight.

    Returns one outcome per item, in input order. A failing item is recorded
    on its outcome and never cancels the others.
    """
    if not items:
        return []

    outcomes: list[BatchOutcome[T, R] | None] = [None] * len(items)
    with time_block(f"{name}.total"):
        with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            future_to_idx = {executor.submit(worker, item): idx for idx, item in enumerate(items)}

            for future in concurrent.futures.as_completed(future_to_idx):
                idx = future_to_idx[future]
                try:
                    outcomes[idx] = BatchOutcome(item=items[idx], result=future.result())
                except Exception as exc:
                    counter(f"{name}.errors")
                    logger.warning("%s: item %d failed: %s", name, idx, exc)
                    outcomes[idx] = BatchOutcome(item=items[idx], error=exc)

    failed = sum(1 for outcome in outcomes if outcome is not None and not outcome.ok)
    log_event(f"{name}.completed", items=len(items), failed=failed)
    return [outcome for outcome in outcomes if outcome is not None]
