"""Bounded-concurrency ``map`` over a thread pool.

``p_map(items, fn, concurrency=n)`` runs ``fn`` over ``items`` with at most
``n`` calls in flight and returns results in input order. Used to run sync
passes for several groups at once.

- ``stop_on_error=True`` (default): the first failure propagates and work
  that has not started yet is cancelled.
- ``stop_on_error=False``: every call runs; failures are raised together as an
  ``ExceptionGroup`` once all calls have finished.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> list[OutT]:
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    pending_items = enumerate(iterable)
    results: dict[int, OutT] = {}
    errors: list[Exception] = []
    index_of: dict[Future[OutT], int] = {}

    with ThreadPoolExecutor(max_workers=concurrency) as pool:

        def submit_next() -> Future[OutT] | None:
            try:
                idx, item = next(pending_items)
            except StopIteration:
                return None
            fut = pool.submit(mapper, item)
            index_of[fut] = idx
            return fut

        active: set[Future[OutT]] = set()
        for _ in range(concurrency):
            fut = submit_next()
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = index_of.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        pool.shutdown(wait=False, cancel_futures=True)
                        raise
                    errors.append(e)
                nxt = submit_next()
                if nxt is not None:
                    active.add(nxt)

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)
    return [results[i] for i in sorted(results)]


__all__ = ["p_map"]
