"""Run consensus calling for many groups on a thread pool.

Groups are loaded and submitted by the calling thread, at most `in_flight` at
a time, and results are handed to `emit` in group order from the calling
thread only. Worker threads never touch the output.
"""

import collections
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Deque, Iterable, List, Optional, Tuple, TypeVar

from tqdm import tqdm

from .errors import WorkerFailure
from .types import DuplicateGroup, Read

T = TypeVar('T')

WorkItem = Tuple[DuplicateGroup, List[Read]]


def _run(work: Callable[[DuplicateGroup, List[Read]], T], group: DuplicateGroup, reads: List[Read]) -> T:
    try:
        return work(group, reads)
    except Exception as e:
        raise WorkerFailure(group.index, group.fingerprint.key, e) from e


def dispatch(items: Iterable[WorkItem],
             work: Callable[[DuplicateGroup, List[Read]], T],
             emit: Callable[[T], None],
             threads: int = 4,
             in_flight: Optional[int] = None,
             total: Optional[int] = None,
             progress: bool = True) -> int:
    """Apply `work` to every (group, reads) item and pass results to `emit` in input order.

    Returns the number of groups processed. The first failing group stops the
    run: pending work is cancelled, the pool is shut down and the failure is
    raised as WorkerFailure.
    """
    if in_flight is None:
        in_flight = threads * 3
    processed = 0

    with tqdm(total=total, desc="Calling consensus", unit="group", disable=not progress) as bar:
        if threads <= 1:
            for group, reads in items:
                emit(_run(work, group, reads))
                processed += 1
                bar.update(1)
            return processed

        pending: Deque[Future] = collections.deque()
        executor = ThreadPoolExecutor(max_workers=threads, thread_name_prefix="nailpolish")
        try:
            for group, reads in items:
                pending.append(executor.submit(_run, work, group, reads))
                if len(pending) >= in_flight:
                    emit(pending.popleft().result())
                    processed += 1
                    bar.update(1)
            while pending:
                emit(pending.popleft().result())
                processed += 1
                bar.update(1)
        except BaseException:
            logging.debug(f"Cancelling {len(pending)} pending groups")
            for future in pending:
                future.cancel()
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    return processed
