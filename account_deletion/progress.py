"""
Progress snapshot of a deletion job, derived from its steps on every read.
"""
import math

from .models import DeletionJobStep

STEP_PROGRESS = {
    DeletionJobStep.VALIDATE_USER: 5,
    DeletionJobStep.BATCH_PROCESSING: 10,
    DeletionJobStep.SUPABASE_DELETE: 95,
    DeletionJobStep.CLEANUP: 98,
    DeletionJobStep.COMPLETED: 100,
}

BATCH_PROGRESS_START = 10
BATCH_PROGRESS_END = 95
MINUTES_PER_BATCH = 0.5


def current_step(steps):
    """First IN_PROGRESS step, else first PENDING, else the last one."""
    steps = sorted(steps, key=lambda s: s.order)
    if not steps:
        return None
    for step in steps:
        if step.status == DeletionJobStep.STATUS_IN_PROGRESS:
            return step
    for step in steps:
        if step.status == DeletionJobStep.STATUS_PENDING:
            return step
    return steps[-1]


def progress_percentage(step_name, current_batch, total_batches):
    if step_name == DeletionJobStep.BATCH_PROCESSING and total_batches:
        span = BATCH_PROGRESS_END - BATCH_PROGRESS_START
        return round(BATCH_PROGRESS_START + span * current_batch / total_batches)
    return STEP_PROGRESS.get(step_name, 0)


def estimated_minutes_remaining(current_batch, total_batches):
    return max(0, math.ceil((total_batches - current_batch) * MINUTES_PER_BATCH))


def build_progress(job):
    steps = list(job.steps.all())
    step = current_step(steps)
    step_name = step.step_name if step else None

    return {
        'jobId': str(job.job_id),
        'status': job.status,
        'currentBatch': job.current_batch,
        'totalBatches': job.total_batches,
        'currentStep': step_name,
        'progressPercentage': progress_percentage(step_name, job.current_batch, job.total_batches),
        'estimatedMinutesRemaining': estimated_minutes_remaining(job.current_batch, job.total_batches),
        'retryCount': job.retry_count,
        'error': job.failure_reason or None,
        'startedAt': job.started_at.isoformat() if job.started_at else None,
        'completedAt': job.completed_at.isoformat() if job.completed_at else None,
        'steps': [
            {
                'stepName': s.step_name,
                'status': s.status,
                'startedAt': s.started_at.isoformat() if s.started_at else None,
                'completedAt': s.completed_at.isoformat() if s.completed_at else None,
                'failureReason': s.failure_reason or None,
                'itemsProcessed': s.items_processed,
                'totalItems': s.total_items,
                'durationMs': s.duration_ms,
            }
            for s in sorted(steps, key=lambda s: s.order)
        ],
    }
