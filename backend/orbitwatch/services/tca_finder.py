"""Time of Closest Approach (TCA) refinement for High-risk pairs.

Steps both objects forward from the reference epoch over a bounded horizon
and reports when their separation is smallest. The search stops at the first
step where the separation grows past the best value seen so far, i.e. it
assumes the separation is unimodal inside the horizon. For oscillating
geometries it can report an earlier local minimum rather than the true one.

Each refinement checks its wall-clock deadline between provider calls, so a
single provider call that never returns is only bounded on the pool path.
Pool refinements run on one long-lived executor per worker count. A worker
stuck inside the provider stays stuck and the pool loses that slot, but the
thread count never grows past ``max_workers`` across passes; abandoned
refinements are reported as TCAError when the pass budget runs out.
"""
from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from datetime import datetime, timedelta
from time import perf_counter
from typing import Optional, Sequence

import numpy as np

from ..config import settings
from .orbital_constants import TCA_HORIZON_MINUTES, TCA_STEP_MINUTES, RiskTier
from .position_provider import PositionProvider, PositionProviderError
from .tracked_object import (
    ConjunctionPair,
    TCAComputed,
    TCAError,
    TCAOutcome,
    TCAUnavailable,
    TrackedObject,
)

logger = logging.getLogger(__name__)


_executors: dict[int, ThreadPoolExecutor] = {}
_executors_lock = threading.Lock()


class RefinementTimeout(Exception):
    pass


def _position(provider: PositionProvider, obj: TrackedObject, at: datetime) -> np.ndarray:
    position = provider.position_at(obj.orbital_elements, at)
    if position is None:
        raise PositionProviderError(f"No position for {obj.object_id} at {at.isoformat()}")
    return np.asarray(position, dtype=float)


def _search_minimum(
    first: TrackedObject,
    second: TrackedObject,
    epoch: datetime,
    provider: PositionProvider,
    horizon_minutes: int,
    step_minutes: int,
    deadline: Optional[float],
) -> TCAComputed:
    best_distance = math.inf
    best_minutes = 0

    for minutes in range(0, horizon_minutes + 1, step_minutes):
        if deadline is not None and perf_counter() >= deadline:
            raise RefinementTimeout(f"timeout after {minutes} of {horizon_minutes} minutes")

        at = epoch + timedelta(minutes=minutes)
        distance = float(np.linalg.norm(_position(provider, first, at) - _position(provider, second, at)))
        if not math.isfinite(distance):
            raise PositionProviderError(f"Non-finite separation at {at.isoformat()}")

        if distance < best_distance:
            best_distance = distance
            best_minutes = minutes
        elif minutes > 0 and distance > best_distance:
            # Separation is growing again: past the minimum.
            break

    return TCAComputed(elapsed=timedelta(minutes=best_minutes))


def refine_closest_approach(
    first: TrackedObject,
    second: TrackedObject,
    epoch: datetime,
    provider: PositionProvider,
    horizon_minutes: int = TCA_HORIZON_MINUTES,
    step_minutes: int = TCA_STEP_MINUTES,
    timeout_seconds: Optional[float] = None,
) -> TCAOutcome:
    """Find the elapsed time to minimum separation between two objects.

    Parameters:
        first: First object of the pair.
        second: Second object of the pair.
        epoch: Reference epoch (step 0 of the search).
        provider: Position Provider used for both objects.
        horizon_minutes: Look-ahead horizon [minutes], inclusive.
        step_minutes: Search step [minutes].
        timeout_seconds: Wall-clock budget for the whole search [s];
            defaults to ``settings.refine_timeout_seconds``.

    Returns:
        TCAComputed with the elapsed time of the minimum, TCAUnavailable when
        either object lacks orbital elements (the provider is not called), or
        TCAError when the provider fails, the budget runs out, or anything
        else goes wrong. Never raises.
    """
    if not (first.has_elements and second.has_elements):
        return TCAUnavailable()

    if timeout_seconds is None:
        timeout_seconds = settings.refine_timeout_seconds
    deadline = perf_counter() + timeout_seconds
    try:
        return _search_minimum(
            first, second, epoch, provider, horizon_minutes, max(1, step_minutes), deadline,
        )
    except PositionProviderError as exc:
        logger.warning(
            "TCA search aborted: pair=%s/%s reason=%s",
            first.object_id,
            second.object_id,
            exc,
        )
        return TCAError(reason=str(exc))
    except RefinementTimeout as exc:
        logger.warning(
            "TCA search timed out: pair=%s/%s %s",
            first.object_id,
            second.object_id,
            exc,
        )
        return TCAError(reason=str(exc))
    except Exception as exc:
        logger.exception("TCA search failed: pair=%s/%s", first.object_id, second.object_id)
        return TCAError(reason=f"internal error: {exc}")


def _shared_executor(max_workers: int) -> ThreadPoolExecutor:
    with _executors_lock:
        executor = _executors.get(max_workers)
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"tca-w{max_workers}")
            _executors[max_workers] = executor
        return executor


def refine_high_risk_pairs(
    pairs: Sequence[ConjunctionPair],
    objects: Sequence[TrackedObject],
    epoch: datetime,
    provider: PositionProvider,
    max_workers: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
    horizon_minutes: int = TCA_HORIZON_MINUTES,
    step_minutes: int = TCA_STEP_MINUTES,
) -> list[ConjunctionPair]:
    """Refine every High pair concurrently and return the pairs in input order.

    Medium and Low pairs are returned untouched. Any refinement that has not
    finished once the pass budget is spent is reported as TCAError.
    """
    by_id = {obj.object_id: obj for obj in objects}
    high_idx = [idx for idx, pair in enumerate(pairs) if pair.risk is RiskTier.HIGH]
    if not high_idx:
        return list(pairs)

    if timeout_seconds is None:
        timeout_seconds = settings.refine_timeout_seconds
    workers = max(1, max_workers if max_workers is not None else settings.refine_max_workers)

    started = perf_counter()
    executor = _shared_executor(workers)
    futures: dict[int, Future] = {}
    for idx in high_idx:
        pair = pairs[idx]
        futures[idx] = executor.submit(
            refine_closest_approach,
            by_id[pair.first_id],
            by_id[pair.second_id],
            epoch,
            provider,
            horizon_minutes,
            step_minutes,
            timeout_seconds,
        )

    rounds = math.ceil(len(high_idx) / workers)
    done, not_done = wait(futures.values(), timeout=timeout_seconds * rounds + 1.0)
    for future in not_done:
        future.cancel()

    refined = list(pairs)
    for idx, future in futures.items():
        if future in done:
            outcome = future.result()
        else:
            outcome = TCAError(reason="timeout waiting for refinement")
        refined[idx] = replace(refined[idx], time_to_closest=outcome)

    logger.info(
        "TCA refinement complete: high_risk=%s workers=%s unfinished=%s elapsed_ms=%.1f",
        len(high_idx),
        workers,
        len(not_done),
        (perf_counter() - started) * 1000.0,
    )
    return refined
