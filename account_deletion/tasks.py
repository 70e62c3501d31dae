"""
Celery tasks for account deletion.
"""
import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(bind=True, name='account_deletion.run_deletion_job')
def run_deletion_job(self, job_id):
    """
    Run one deletion job to completion.

    Args:
        job_id: DeletionJob.job_id (UUID string)

    Returns:
        dict: job id and the status the job ended in
    """
    from .identity_provider import SupabaseAdminClient
    from .models import DeletionJob
    from .pipeline import DeletionPipeline

    try:
        job = DeletionJob.objects.get(job_id=job_id)
    except DeletionJob.DoesNotExist:
        error_msg = f"Deletion job {job_id} not found"
        logger.error(error_msg)
        return {'success': False, 'error': error_msg}

    logger.info(f"Starting deletion job {job_id} for user {job.user_id}")
    pipeline = DeletionPipeline(SupabaseAdminClient.from_settings())
    job = pipeline.run(job)

    return {
        'success': job.status == DeletionJob.STATUS_COMPLETED,
        'job_id': str(job.job_id),
        'status': job.status,
    }


@shared_task(name='account_deletion.resume_stalled_jobs')
def resume_stalled_jobs():
    """
    Supervisor sweep.

    Active jobs that have not been touched for STALLED_AFTER_MINUTES were
    interrupted (worker crash, lost message) and are enqueued again; the
    pipeline continues from the persisted batch. Jobs started more than
    STUCK_AFTER_HOURS ago are escalated to NEEDS_MANUAL_REVIEW instead.
    """
    from splits.models import AuditLog
    from .models import DeletionJob
    from .pipeline import get_config

    config = get_config()
    now = timezone.now()
    stuck_before = now - timedelta(hours=config['STUCK_AFTER_HOURS'])
    stalled_before = now - timedelta(minutes=config['STALLED_AFTER_MINUTES'])

    active = DeletionJob.objects.filter(status__in=DeletionJob.ACTIVE_STATUSES)

    escalated = 0
    for job in active.filter(started_at__lt=stuck_before):
        updated = DeletionJob.objects.filter(
            pk=job.pk, status__in=DeletionJob.ACTIVE_STATUSES
        ).update(
            status=DeletionJob.STATUS_NEEDS_MANUAL_REVIEW,
            failure_reason=f"Stuck for more than {config['STUCK_AFTER_HOURS']} hours",
            updated_at=now,
        )
        if updated:
            escalated += 1
            AuditLog.objects.create(
                action='ACCOUNT_DELETION_NEEDS_MANUAL_REVIEW',
                user_id=job.user_id,
                details={'jobId': str(job.job_id), 'reason': 'stuck'},
            )
            logger.error(f"Deletion job {job.job_id} stuck since {job.started_at}, escalated")

    resumed = 0
    for job in active.filter(updated_at__lt=stalled_before):
        run_deletion_job.delay(str(job.job_id))
        resumed += 1
        logger.warning(f"Re-enqueued stalled deletion job {job.job_id} ({job.status})")

    logger.info(f"Deletion supervisor: {resumed} resumed, {escalated} escalated")
    return {'resumed': resumed, 'escalated': escalated}
