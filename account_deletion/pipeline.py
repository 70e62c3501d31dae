"""
Account deletion pipeline.

Runs a DeletionJob through VALIDATE_USER, BATCH_PROCESSING, SUPABASE_DELETE,
CLEANUP and COMPLETED. Every step is idempotent: a retry, or a resume by the
supervisor task, starts again at VALIDATE_USER and continues batch work from
the persisted current_batch.

Accounts are never hard-deleted. The user is anonymised, the profile is
soft-deleted, and signatures are unlinked but kept as legal records.
"""
import logging
import math
import time
from contextlib import contextmanager
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from accounts.models import UserProfile
from splits.models import AuditLog, Contributor, Signature, SplitSheet
from .identity_provider import IdentityProviderError
from .models import DeletionJob, DeletionJobStep

logger = logging.getLogger(__name__)

User = get_user_model()

DEFAULTS = {
    'BATCH_SIZE': 50,
    'MAX_RETRIES': 3,
    'RETRY_DELAYS': [1, 5, 15],
    'CANCELLATION_WINDOW_SECONDS': 30,
    'RETENTION_DAYS': 90,
    'STALLED_AFTER_MINUTES': 15,
    'STUCK_AFTER_HOURS': 24,
}

DELETION_REASON = 'User requested account deletion'


def get_config():
    return {**DEFAULTS, **getattr(settings, 'ACCOUNT_DELETION', {})}


class JobCancelled(Exception):
    """The job was cancelled while the pipeline was running."""


class UserValidationError(Exception):
    pass


def create_job(user, requested_by=None):
    """
    Create a PENDING job and its step placeholders.

    Raises IntegrityError when the user already has an active job.
    """
    with transaction.atomic():
        job = DeletionJob.objects.create(user=user, requested_by=requested_by)
        DeletionJobStep.objects.bulk_create([
            DeletionJobStep(job=job, step_name=name, order=index)
            for index, name in enumerate(DeletionJobStep.STEP_ORDER)
        ])
    logger.info(f"Deletion job {job.job_id} created for user {user.id}")
    return job


def anonymised_username(user_id):
    return f'deleted-user-{user_id}'


def soft_delete_user(user, now=None):
    """
    Anonymise the auth user and soft-delete the profile.
    Legal-structure data elsewhere is left untouched.
    """
    now = now or timezone.now()
    retention_days = get_config()['RETENTION_DAYS']

    user.username = anonymised_username(user.id)
    user.email = f'{anonymised_username(user.id)}@deleted.invalid'
    user.first_name = ''
    user.last_name = ''
    user.is_active = False
    user.set_unusable_password()
    user.save(update_fields=['username', 'email', 'first_name', 'last_name', 'is_active', 'password'])

    profile, _ = UserProfile.objects.get_or_create(user=user)
    profile.role = UserProfile.ROLE_DELETED
    profile.username = None
    profile.bio = ''
    profile.phone = ''
    profile.address = ''
    profile.publisher = None
    profile.pro_org = None
    profile.label = None
    profile.deleted_at = now
    profile.deletion_reason = DELETION_REASON
    profile.data_retention_until = now + timedelta(days=retention_days)
    profile.save()
    return profile


def strip_contributors(user, limit=None):
    """Unlink contributor rows and clear their contact data. Returns rows touched."""
    ids = Contributor.objects.filter(user=user).order_by('id').values_list('id', flat=True)
    if limit is not None:
        ids = ids[:limit]
    return Contributor.objects.filter(id__in=list(ids)).update(
        user=None,
        contact_email=None,
        contact_phone=None,
        address=None,
        updated_at=timezone.now(),
    )


def unlink_signatures(user, limit=None):
    """Clear the user reference only; signature data stays."""
    ids = Signature.objects.filter(user=user).order_by('id').values_list('id', flat=True)
    if limit is not None:
        ids = ids[:limit]
    return Signature.objects.filter(id__in=list(ids)).update(user=None)


def release_split_sheets(user, limit=None):
    ids = SplitSheet.objects.filter(created_by=user).order_by('id').values_list('id', flat=True)
    if limit is not None:
        ids = ids[:limit]
    return SplitSheet.objects.filter(id__in=list(ids)).update(
        created_by=None,
        updated_at=timezone.now(),
    )


class DeletionPipeline:
    """
    Runs deletion jobs with bounded retries.

    Args:
        identity_client: object with delete_user(external_id), usually a
            SupabaseAdminClient
        sleep: blocking wait used between attempts
        config: overrides for the ACCOUNT_DELETION settings
    """

    def __init__(self, identity_client, sleep=time.sleep, config=None):
        self.identity_client = identity_client
        self.sleep = sleep
        self.config = {**get_config(), **(config or {})}

    # Job state

    def _current_status(self, job):
        return DeletionJob.objects.filter(pk=job.pk).values_list('status', flat=True).first()

    def _check_cancelled(self, job):
        if self._current_status(job) == DeletionJob.STATUS_CANCELLED:
            job.status = DeletionJob.STATUS_CANCELLED
            raise JobCancelled(f"Deletion job {job.job_id} was cancelled")

    def _set_status(self, job, status, **fields):
        """Change status unless the job was cancelled in the meantime."""
        updated = DeletionJob.objects.filter(pk=job.pk).exclude(
            status=DeletionJob.STATUS_CANCELLED
        ).update(status=status, updated_at=timezone.now(), **fields)
        if not updated:
            job.status = DeletionJob.STATUS_CANCELLED
            raise JobCancelled(f"Deletion job {job.job_id} was cancelled")
        job.status = status
        for name, value in fields.items():
            setattr(job, name, value)

    @contextmanager
    def step(self, job, step_name):
        """Record start, end, duration and failure of one step."""
        self._check_cancelled(job)
        step = job.step(step_name)
        step.status = DeletionJobStep.STATUS_IN_PROGRESS
        step.started_at = timezone.now()
        step.completed_at = None
        step.failure_reason = ''
        step.save(update_fields=['status', 'started_at', 'completed_at', 'failure_reason'])
        started = time.monotonic()

        try:
            yield step
        except JobCancelled:
            raise
        except Exception as e:
            step.status = DeletionJobStep.STATUS_FAILED
            step.failure_reason = str(e)
            step.retry_count += 1
            step.completed_at = timezone.now()
            step.duration_ms = int((time.monotonic() - started) * 1000)
            step.save(update_fields=[
                'status', 'failure_reason', 'retry_count', 'completed_at', 'duration_ms'
            ])
            raise
        else:
            self._check_cancelled(job)
            if step.status == DeletionJobStep.STATUS_IN_PROGRESS:
                step.status = DeletionJobStep.STATUS_COMPLETED
            step.completed_at = timezone.now()
            step.duration_ms = int((time.monotonic() - started) * 1000)
            step.save(update_fields=[
                'status', 'failure_reason', 'items_processed', 'total_items',
                'completed_at', 'duration_ms'
            ])

    # Entry point

    def run(self, job):
        """
        Run the job to a terminal state (or until cancelled).

        Failures are recorded on the job; nothing is raised to the caller.
        """
        job.refresh_from_db()
        if not job.is_active:
            logger.info(f"Deletion job {job.job_id} already {job.status}, nothing to do")
            return job

        max_retries = self.config['MAX_RETRIES']
        delays = self.config['RETRY_DELAYS']

        try:
            self._set_status(
                job,
                DeletionJob.STATUS_IN_PROGRESS,
                started_at=job.started_at or timezone.now(),
            )
        except JobCancelled:
            return job

        while True:
            try:
                self._run_attempt(job)
                return job
            except JobCancelled:
                logger.info(f"Deletion job {job.job_id} cancelled, stopping")
                return job
            except Exception as e:
                logger.error(
                    f"Deletion job {job.job_id} attempt {job.retry_count + 1} failed: {str(e)}",
                    exc_info=True
                )
                if self._current_status(job) == DeletionJob.STATUS_CANCELLED:
                    job.status = DeletionJob.STATUS_CANCELLED
                    return job

                retry_count = job.retry_count + 1
                if retry_count > max_retries:
                    self._escalate(job, retry_count, str(e))
                    return job

                try:
                    self._set_status(
                        job,
                        DeletionJob.STATUS_RETRYING,
                        retry_count=retry_count,
                        failure_reason=str(e),
                    )
                except JobCancelled:
                    return job

                delay = delays[min(retry_count - 1, len(delays) - 1)] if delays else 0
                logger.warning(
                    f"Retrying deletion job {job.job_id} in {delay}s "
                    f"(retry {retry_count}/{max_retries})"
                )
                self.sleep(delay)

                try:
                    self._set_status(job, DeletionJob.STATUS_IN_PROGRESS)
                except JobCancelled:
                    return job

    def _escalate(self, job, retry_count, reason):
        try:
            self._set_status(
                job,
                DeletionJob.STATUS_NEEDS_MANUAL_REVIEW,
                retry_count=retry_count,
                failure_reason=reason,
            )
        except JobCancelled:
            return
        AuditLog.objects.create(
            action='ACCOUNT_DELETION_NEEDS_MANUAL_REVIEW',
            user_id=job.user_id,
            details={
                'jobId': str(job.job_id),
                'retryCount': retry_count,
                'failureReason': reason,
            },
        )
        # TODO: notify the requesting user once an email channel exists.
        logger.error(
            f"Deletion job {job.job_id} needs manual review after {retry_count} failed attempts"
        )

    # Steps

    def _run_attempt(self, job):
        user, counts = self._validate_user(job)
        self._process_batches(job, user, counts)
        self._delete_identity(job, user)
        self._cleanup(job, user)
        self._complete(job, user)

    def _validate_user(self, job):
        with self.step(job, DeletionJobStep.VALIDATE_USER) as step:
            user = User.objects.filter(pk=job.user_id).first()
            if user is None:
                raise UserValidationError(f"User {job.user_id} not found")

            profile = UserProfile.objects.filter(user=user).first()
            batch_started = job.steps.filter(
                step_name=DeletionJobStep.BATCH_PROCESSING,
                started_at__isnull=False
            ).exists()
            if profile and profile.is_deleted and not batch_started:
                raise UserValidationError(f"User {user.id} is already deleted")

            counts = {
                'profiles': 1 if profile else 0,
                'contributors': Contributor.objects.filter(user=user).count(),
                'signatures': Signature.objects.filter(user=user).count(),
                'splitSheets': SplitSheet.objects.filter(created_by=user).count(),
            }
            step.total_items = sum(counts.values())
            step.items_processed = step.total_items

            if not batch_started:
                total_batches = math.ceil(counts['splitSheets'] / self.config['BATCH_SIZE'])
                job.total_batches = total_batches
                job.save(update_fields=['total_batches', 'updated_at'])

            logger.info(f"Deletion job {job.job_id} validated user {user.id}: {counts}")
        return user, counts

    def _process_batches(self, job, user, counts):
        batch_size = self.config['BATCH_SIZE']

        with self.step(job, DeletionJobStep.BATCH_PROCESSING) as step:
            step.total_items = job.total_batches

            if job.total_batches == 0:
                with transaction.atomic():
                    if not self._is_soft_deleted(user):
                        soft_delete_user(user)
                    strip_contributors(user)
                    unlink_signatures(user)
                    release_split_sheets(user)
                logger.info(f"Deletion job {job.job_id} soft-deleted user {user.id} directly")
                return

            for batch in range(job.current_batch, job.total_batches):
                self._check_cancelled(job)
                is_last = batch == job.total_batches - 1
                limit = None if is_last else batch_size

                with transaction.atomic():
                    if not self._is_soft_deleted(user):
                        soft_delete_user(user)
                    contributors = strip_contributors(user, limit)
                    signatures = unlink_signatures(user, limit)
                    sheets = release_split_sheets(user, limit)
                    job.current_batch = batch + 1
                    job.save(update_fields=['current_batch', 'updated_at'])

                step.items_processed = job.current_batch
                step.save(update_fields=['items_processed', 'total_items'])
                logger.info(
                    f"Deletion job {job.job_id} batch {batch + 1}/{job.total_batches}: "
                    f"{sheets} sheets, {contributors} contributors, {signatures} signatures"
                )

    def _is_soft_deleted(self, user):
        return UserProfile.objects.filter(user=user, deleted_at__isnull=False).exists()

    def _delete_identity(self, job, user):
        with self.step(job, DeletionJobStep.SUPABASE_DELETE) as step:
            external_id = UserProfile.objects.filter(user=user).values_list(
                'external_auth_id', flat=True
            ).first()
            if not external_id:
                logger.info(f"User {user.id} has no identity provider account, skipping")
                return

            step.total_items = 1
            try:
                self.identity_client.delete_user(external_id)
            except IdentityProviderError as e:
                # Non-fatal: the local soft-delete stands.
                step.status = DeletionJobStep.STATUS_FAILED_NON_FATAL
                step.failure_reason = str(e)
                logger.warning(f"Deletion job {job.job_id} identity provider delete failed: {str(e)}")
                return
            step.items_processed = 1

    def _cleanup(self, job, user):
        with self.step(job, DeletionJobStep.CLEANUP):
            purge_after = timezone.now() + timedelta(days=self.config['RETENTION_DAYS'])
            AuditLog.objects.create(
                action='PERSONAL_DATA_PURGE_SCHEDULED',
                user=user,
                details={
                    'jobId': str(job.job_id),
                    'purgeAfter': purge_after.isoformat(),
                },
            )

    def _complete(self, job, user):
        with self.step(job, DeletionJobStep.COMPLETED):
            with transaction.atomic():
                self._set_status(
                    job,
                    DeletionJob.STATUS_COMPLETED,
                    completed_at=timezone.now(),
                    failure_reason='',
                )
                AuditLog.objects.create(
                    action='ACCOUNT_DELETION_COMPLETED',
                    user=user,
                    details={
                        'jobId': str(job.job_id),
                        'retryCount': job.retry_count,
                        'totalBatches': job.total_batches,
                    },
                )
        logger.info(f"Deletion job {job.job_id} completed for user {user.id}")
