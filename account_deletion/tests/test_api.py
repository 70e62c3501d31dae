"""
Tests for /api/v1/profiles/delete-account/ and the deletion supervisor.
"""
import uuid
from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import UserProfile
from account_deletion.models import DeletionJob, DeletionJobStep
from account_deletion.pipeline import create_job
from account_deletion.progress import (
    build_progress,
    estimated_minutes_remaining,
    progress_percentage,
)
from account_deletion.tasks import resume_stalled_jobs
from splits.models import AuditLog

User = get_user_model()

URL = '/api/v1/profiles/delete-account/'


def make_user(username, role=UserProfile.ROLE_ARTIST):
    user = User.objects.create_user(username=username, password='testpass123')
    UserProfile.objects.filter(user=user).update(role=role)
    return User.objects.get(pk=user.pk)


class ProgressTest(TestCase):

    def test_step_percentages(self):
        self.assertEqual(progress_percentage(DeletionJobStep.VALIDATE_USER, 0, 0), 5)
        self.assertEqual(progress_percentage(DeletionJobStep.BATCH_PROCESSING, 0, 0), 10)
        self.assertEqual(progress_percentage(DeletionJobStep.SUPABASE_DELETE, 3, 3), 95)
        self.assertEqual(progress_percentage(DeletionJobStep.CLEANUP, 3, 3), 98)
        self.assertEqual(progress_percentage(DeletionJobStep.COMPLETED, 3, 3), 100)

    def test_batch_progress_is_interpolated(self):
        self.assertEqual(progress_percentage(DeletionJobStep.BATCH_PROCESSING, 0, 4), 10)
        self.assertEqual(progress_percentage(DeletionJobStep.BATCH_PROCESSING, 2, 4), 52)
        self.assertEqual(progress_percentage(DeletionJobStep.BATCH_PROCESSING, 4, 4), 95)

    def test_estimated_minutes(self):
        self.assertEqual(estimated_minutes_remaining(0, 3), 2)
        self.assertEqual(estimated_minutes_remaining(1, 3), 1)
        self.assertEqual(estimated_minutes_remaining(3, 3), 0)
        self.assertEqual(estimated_minutes_remaining(5, 3), 0)

    def test_snapshot_of_new_job(self):
        job = create_job(make_user('someone'))

        snapshot = build_progress(job)

        self.assertEqual(snapshot['jobId'], str(job.job_id))
        self.assertEqual(snapshot['status'], DeletionJob.STATUS_PENDING)
        self.assertEqual(snapshot['currentStep'], DeletionJobStep.VALIDATE_USER)
        self.assertEqual(snapshot['progressPercentage'], 5)
        self.assertIsNone(snapshot['error'])
        self.assertEqual(
            [s['stepName'] for s in snapshot['steps']], DeletionJobStep.STEP_ORDER
        )


@patch('account_deletion.views.run_deletion_job')
class DeleteAccountRequestTest(TestCase):
    """Tests for POST."""

    def setUp(self):
        self.client = APIClient()
        self.user = make_user('leaving')
        self.other = make_user('other')
        self.admin = make_user('admin', UserProfile.ROLE_ADMIN)

    def post(self, user, data):
        self.client.force_authenticate(user=user)
        with self.captureOnCommitCallbacks(execute=True):
            return self.client.post(URL, data, format='json')

    def test_request_own_deletion(self, mock_task):
        response = self.post(self.user, {'userId': self.user.id, 'confirmation': 'DELETE'})

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        job = DeletionJob.objects.get(job_id=response.data['jobId'])
        self.assertEqual(response.data['status'], DeletionJob.STATUS_PENDING)
        self.assertEqual(job.user, self.user)
        self.assertEqual(job.requested_by, self.user)
        self.assertEqual(job.steps.count(), 5)
        mock_task.delay.assert_called_once_with(str(job.job_id))

    def test_confirmation_required(self, mock_task):
        response = self.post(self.user, {'userId': self.user.id, 'confirmation': 'delete'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Valid user ID and confirmation are required')
        mock_task.delay.assert_not_called()

    def test_cannot_delete_someone_else(self, mock_task):
        response = self.post(self.user, {'userId': self.other.id, 'confirmation': 'DELETE'})

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(DeletionJob.objects.exists())

    def test_admin_can_delete_someone_else(self, mock_task):
        response = self.post(self.admin, {'userId': self.other.id, 'confirmation': 'DELETE'})

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        job = DeletionJob.objects.get()
        self.assertEqual(job.user, self.other)
        self.assertEqual(job.requested_by, self.admin)

    def test_unknown_user(self, mock_task):
        response = self.post(self.admin, {'userId': 99999, 'confirmation': 'DELETE'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_one_active_job_per_user(self, mock_task):
        self.post(self.user, {'userId': self.user.id, 'confirmation': 'DELETE'})

        response = self.post(self.user, {'userId': self.user.id, 'confirmation': 'DELETE'})

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(DeletionJob.objects.count(), 1)
        self.assertEqual(mock_task.delay.call_count, 1)

    def test_new_job_allowed_after_terminal_one(self, mock_task):
        job = create_job(self.user)
        DeletionJob.objects.filter(pk=job.pk).update(status=DeletionJob.STATUS_CANCELLED)

        response = self.post(self.user, {'userId': self.user.id, 'confirmation': 'DELETE'})

        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)


class DeleteAccountProgressTest(TestCase):
    """Tests for GET ?jobId=."""

    def setUp(self):
        self.client = APIClient()
        self.user = make_user('leaving')
        self.other = make_user('other')
        self.admin = make_user('admin', UserProfile.ROLE_ADMIN)
        self.job = create_job(self.user, requested_by=self.user)

    def test_owner_polls_progress(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(URL, {'jobId': str(self.job.job_id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['jobId'], str(self.job.job_id))
        self.assertEqual(response.data['progressPercentage'], 5)

    def test_admin_polls_progress(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(URL, {'jobId': str(self.job.job_id)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_stranger_forbidden(self):
        self.client.force_authenticate(user=self.other)
        response = self.client.get(URL, {'jobId': str(self.job.job_id)})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_job_id_validation(self):
        self.client.force_authenticate(user=self.user)

        self.assertEqual(self.client.get(URL).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            self.client.get(URL, {'jobId': 'not-a-uuid'}).status_code,
            status.HTTP_400_BAD_REQUEST
        )
        self.assertEqual(
            self.client.get(URL, {'jobId': str(uuid.uuid4())}).status_code,
            status.HTTP_404_NOT_FOUND
        )

    def test_soft_deleted_user_can_still_poll(self):
        UserProfile.objects.filter(user=self.user).update(deleted_at=timezone.now())
        self.client.force_authenticate(user=User.objects.get(pk=self.user.pk))

        response = self.client.get(URL, {'jobId': str(self.job.job_id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)


class DeleteAccountCancelTest(TestCase):
    """Tests for DELETE ?jobId=."""

    def setUp(self):
        self.client = APIClient()
        self.user = make_user('leaving')
        self.job = create_job(self.user, requested_by=self.user)
        self.client.force_authenticate(user=self.user)

    def start(self, seconds_ago=5, validate_status=DeletionJobStep.STATUS_IN_PROGRESS):
        DeletionJob.objects.filter(pk=self.job.pk).update(
            status=DeletionJob.STATUS_IN_PROGRESS,
            started_at=timezone.now() - timedelta(seconds=seconds_ago),
        )
        self.job.steps.filter(step_name=DeletionJobStep.VALIDATE_USER).update(status=validate_status)

    def cancel(self):
        return self.client.delete(f'{URL}?jobId={self.job.job_id}')

    def test_cancel_during_validation(self):
        self.start()

        response = self.cancel()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], DeletionJob.STATUS_CANCELLED)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, DeletionJob.STATUS_CANCELLED)
        self.assertIsNotNone(self.job.cancellation_requested_at)
        step = self.job.steps.get(step_name=DeletionJobStep.VALIDATE_USER)
        self.assertEqual(step.status, DeletionJobStep.STATUS_CANCELLED)

    def test_cancel_window_elapsed(self):
        self.start(seconds_ago=31)

        response = self.cancel()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.job.refresh_from_db()
        self.assertEqual(self.job.status, DeletionJob.STATUS_IN_PROGRESS)

    def test_cannot_cancel_after_validation(self):
        self.start(validate_status=DeletionJobStep.STATUS_COMPLETED)

        response = self.cancel()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Deletion can no longer be cancelled')

    def test_cannot_cancel_pending_job(self):
        response = self.cancel()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


@patch('account_deletion.tasks.run_deletion_job')
class ResumeStalledJobsTest(TestCase):
    """Tests for the periodic supervisor."""

    def setUp(self):
        self.user = make_user('leaving')
        self.other = make_user('other')

    def test_stalled_job_is_re_enqueued(self, mock_task):
        job = create_job(self.user)
        DeletionJob.objects.filter(pk=job.pk).update(
            status=DeletionJob.STATUS_IN_PROGRESS,
            started_at=timezone.now() - timedelta(minutes=30),
            updated_at=timezone.now() - timedelta(minutes=20),
        )

        result = resume_stalled_jobs()

        self.assertEqual(result, {'resumed': 1, 'escalated': 0})
        mock_task.delay.assert_called_once_with(str(job.job_id))

    def test_recently_active_job_left_alone(self, mock_task):
        job = create_job(self.user)
        DeletionJob.objects.filter(pk=job.pk).update(
            status=DeletionJob.STATUS_IN_PROGRESS, started_at=timezone.now()
        )

        result = resume_stalled_jobs()

        self.assertEqual(result, {'resumed': 0, 'escalated': 0})
        mock_task.delay.assert_not_called()

    def test_stuck_job_is_escalated(self, mock_task):
        job = create_job(self.user)
        DeletionJob.objects.filter(pk=job.pk).update(
            status=DeletionJob.STATUS_RETRYING,
            started_at=timezone.now() - timedelta(hours=25),
            updated_at=timezone.now() - timedelta(hours=1),
        )

        result = resume_stalled_jobs()

        self.assertEqual(result, {'resumed': 0, 'escalated': 1})
        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_NEEDS_MANUAL_REVIEW)
        self.assertTrue(AuditLog.objects.filter(action='ACCOUNT_DELETION_NEEDS_MANUAL_REVIEW').exists())
        mock_task.delay.assert_not_called()

    def test_terminal_jobs_ignored(self, mock_task):
        job = create_job(self.other)
        DeletionJob.objects.filter(pk=job.pk).update(
            status=DeletionJob.STATUS_COMPLETED,
            started_at=timezone.now() - timedelta(hours=30),
            updated_at=timezone.now() - timedelta(hours=30),
        )

        result = resume_stalled_jobs()

        self.assertEqual(result, {'resumed': 0, 'escalated': 0})
