"""
Batch progress: pure reducers over the per-job status table.

aggregate() runs after every status change; summarize() builds the final
BatchResult. Neither touches shared state.
"""

from typing import Iterable, List, Mapping

from rayment.schema import (
    BatchFileResult,
    BatchProgress,
    BatchResult,
    BatchStats,
    FileStatus,
    JobStatus,
)

_FAILED = frozenset({JobStatus.FAILED, JobStatus.CANCELLED})


def aggregate(per_job: Mapping[str, FileStatus], started_at: float, now: float) -> BatchProgress:
    """
    Totals for one snapshot. Cancelled counts as failed; anything not terminal
    (including not yet started) is in progress. Cost only counts jobs whose
    payment the hub accepted.
    """
    total = len(per_job)
    completed = sum(1 for s in per_job.values() if s.status == JobStatus.COMPLETED)
    failed = sum(1 for s in per_job.values() if s.status in _FAILED)
    total_cost = sum(s.cost for s in per_job.values() if s.cost is not None)
    return BatchProgress(
        total=total,
        completed=completed,
        failed=failed,
        in_progress=total - completed - failed,
        total_cost=total_cost,
        elapsed_time=max(0.0, now - started_at),
    )


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def summarize(statuses: Iterable[FileStatus], total_time: float) -> BatchResult:
    """Partition final statuses into successful / failed and compute the stats block."""
    successful: List[BatchFileResult] = []
    failed: List[BatchFileResult] = []
    total_cost = 0.0
    for s in statuses:
        entry = BatchFileResult(
            input_ref=s.input_ref,
            status=s.status,
            job_id=s.job_id,
            cost=s.cost,
            render_time=s.render_time,
            result_ref=s.result_ref,
            error=s.error,
        )
        if s.cost is not None:
            total_cost += s.cost
        if s.status == JobStatus.COMPLETED:
            successful.append(entry)
        else:
            if entry.error is None:
                entry.error = f"job ended in state {s.status.value if s.status else 'pending'}"
            failed.append(entry)

    return BatchResult(
        successful=successful,
        failed=failed,
        total_cost=total_cost,
        total_time=total_time,
        stats=BatchStats(
            total=len(successful) + len(failed),
            completed=len(successful),
            failed=len(failed),
            avg_render_time=_mean([r.render_time for r in successful if r.render_time is not None]),
            avg_cost=_mean([r.cost for r in successful if r.cost is not None]),
        ),
    )
