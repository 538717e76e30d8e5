"""
Map a per-group task over a sequence of group records.

Each task receives an independent deep copy of its group and returns a new
record. Results come back in input order in both sequential and parallel
mode. A worker pool is created for the duration of one call only.
"""
from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from nested_forecast.config import ControlConfig
from nested_forecast.errors import FatalBatchError, GroupError, describe_exception
from nested_forecast.nested.table import GroupRecord

logger = logging.getLogger(__name__)

GroupTask = Callable[[GroupRecord], GroupRecord]


def _run_one(
    group: GroupRecord,
    task: GroupTask,
    control: ControlConfig,
    stage: str,
    position: int,
    total: int,
) -> GroupRecord:
    level = logging.INFO if control.verbose else logging.DEBUG
    start = time.perf_counter()
    try:
        result = task(copy.deepcopy(group))
    except Exception as exc:
        if control.fail_fast:
            raise FatalBatchError(group.group_id, describe_exception(exc)) from exc
        logger.warning("%s failed for group %s: %s", stage, group.group_id, exc)
        return group.with_error(f"{stage}: {describe_exception(exc)}")
    if result.group_id != group.group_id:
        raise GroupError(
            f"{stage} task returned group {result.group_id!r} for {group.group_id!r}"
        )
    logger.log(
        level,
        "[%d/%d] %s group %s done in %.2fs",
        position,
        total,
        stage,
        group.group_id,
        time.perf_counter() - start,
    )
    return result


def map_groups(
    groups: Sequence[GroupRecord],
    task: GroupTask,
    control: ControlConfig,
    stage: str = "task",
) -> list[GroupRecord]:
    """
    Apply ``task`` to every group and collect the results in input order.

    Args:
        groups: Group records to process.
        task: Callable returning the new record for one group.
        control: Execution controls (parallelism, verbosity, fail-fast).
        stage: Label used in log lines and captured error text.

    Returns:
        One record per input group. Exceptions raised by ``task`` are stored
        in the group's ``error`` field.

    Raises:
        FatalBatchError: ``control.fail_fast`` is set and a task raised.
    """
    total = len(groups)
    if not control.allow_parallel or control.worker_count == 1 or total <= 1:
        return [
            _run_one(group, task, control, stage, position, total)
            for position, group in enumerate(groups, start=1)
        ]

    workers = min(control.worker_count, total)
    logger.debug("%s: running %d groups on %d workers", stage, total, workers)
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"nested-{stage}")
    try:
        futures: list[Future[GroupRecord]] = [
            pool.submit(_run_one, group, task, control, stage, position, total)
            for position, group in enumerate(groups, start=1)
        ]
        return [future.result() for future in futures]
    except FatalBatchError:
        pool.shutdown(wait=True, cancel_futures=True)
        raise
    finally:
        pool.shutdown(wait=True)
