"""Utilities for ordered parallel execution with an in-process fallback."""
from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor
from typing import Callable, List, Sequence, TypeVar

from tqdm.auto import tqdm

_T = TypeVar("_T")
_R = TypeVar("_R")


def run_parallel(
    func: Callable[[_T], _R],
    tasks: Sequence[_T],
    desc: str,
    workers: int = 1,
    progress: bool = False,
) -> List[_R]:
    """Apply ``func`` to every task and return the results in task order.

    With ``workers == 1`` the tasks run in the calling process; otherwise a
    process pool is used. ``func`` and the tasks must be picklable then.
    """
    if len(tasks) == 0:
        return []

    if workers <= 1:
        return [func(task) for task in tqdm(tasks, desc=desc, leave=False, disable=not progress)]

    with ProcessPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(func, task) for task in tasks]
        results = []
        for f in tqdm(futures, desc=desc, leave=False, disable=not progress):
            results.append(f.result())
        return results
