"""
Tests for the account deletion pipeline.
"""
from decimal import Decimal
from unittest.mock import Mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from accounts.models import Label, UserProfile
from account_deletion.identity_provider import IdentityProviderError
from account_deletion.models import DeletionJob, DeletionJobStep
from account_deletion.pipeline import DeletionPipeline, create_job, soft_delete_user
from splits.models import AuditLog, Contributor, Signature, SplitSheet, Song

User = get_user_model()


class DeletionPipelineTestCase(TestCase):

    def setUp(self):
        self.label = Label.objects.create(name='Night Records')
        self.user = User.objects.create_user(
            username='leaving', email='leaving@example.com', password='x',
            first_name='Lea', last_name='Ving'
        )
        UserProfile.objects.filter(user=self.user).update(
            username='leaving', phone='555-0100', bio='Songwriter',
            label=self.label, external_auth_id='ext-123'
        )
        self.other = User.objects.create_user(username='stays', password='x')
        self.identity = Mock()
        self.sleep = Mock()

    def make_pipeline(self, **config):
        return DeletionPipeline(self.identity, sleep=self.sleep, config=config)

    def make_sheets(self, count):
        sheets = []
        for i in range(count):
            sheet = SplitSheet.objects.create(
                song=Song.objects.create(final_title=f'Song {i}'), created_by=self.user
            )
            row = Contributor.objects.create(
                split_sheet=sheet, user=self.user, legal_name='Lea Ving',
                percentage=Decimal('50'), contact_email='leaving@example.com',
                contact_phone='555-0100'
            )
            Signature.objects.create(
                split_sheet=sheet, user=self.user, contributor=row,
                signed_at=timezone.now(), signature_data='sig'
            )
            sheets.append(sheet)
        return sheets

    def step_status(self, job, step_name):
        return job.step(step_name).status


class DeletionPipelineRunTest(DeletionPipelineTestCase):

    def test_user_without_sheets_is_soft_deleted(self):
        job = create_job(self.user, requested_by=self.user)

        self.make_pipeline().run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)
        self.assertEqual(job.total_batches, 0)
        self.assertIsNotNone(job.started_at)
        self.assertIsNotNone(job.completed_at)
        for step in job.steps.all():
            self.assertEqual(step.status, DeletionJobStep.STATUS_COMPLETED, step.step_name)

        self.user.refresh_from_db()
        self.assertEqual(self.user.username, f'deleted-user-{self.user.id}')
        self.assertTrue(self.user.email.endswith('@deleted.invalid'))
        self.assertFalse(self.user.is_active)
        self.assertFalse(self.user.has_usable_password())
        self.assertEqual(self.user.first_name, '')

        profile = UserProfile.objects.get(user=self.user)
        self.assertEqual(profile.role, UserProfile.ROLE_DELETED)
        self.assertIsNotNone(profile.deleted_at)
        self.assertIsNone(profile.username)
        self.assertEqual(profile.phone, '')
        self.assertIsNone(profile.label)
        self.assertEqual(profile.deletion_reason, 'User requested account deletion')
        self.assertGreater(profile.data_retention_until, profile.deleted_at)

        self.identity.delete_user.assert_called_once_with('ext-123')
        self.assertTrue(AuditLog.objects.filter(action='ACCOUNT_DELETION_COMPLETED').exists())
        self.assertTrue(AuditLog.objects.filter(action='PERSONAL_DATA_PURGE_SCHEDULED').exists())

    def test_batches_release_all_rows_and_keep_signatures(self):
        sheets = self.make_sheets(5)
        job = create_job(self.user)

        self.make_pipeline(BATCH_SIZE=2).run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)
        self.assertEqual(job.total_batches, 3)
        self.assertEqual(job.current_batch, 3)

        self.assertFalse(SplitSheet.objects.filter(created_by=self.user).exists())
        self.assertEqual(SplitSheet.objects.count(), len(sheets))
        self.assertFalse(Contributor.objects.filter(user=self.user).exists())
        self.assertFalse(Contributor.objects.exclude(contact_email__isnull=True).exists())
        self.assertEqual(Contributor.objects.filter(legal_name='Lea Ving').count(), 5)
        self.assertEqual(Signature.objects.filter(user__isnull=True).count(), 5)
        self.assertTrue(all(sig.signature_data == 'sig' for sig in Signature.objects.all()))

        batch_step = job.steps.get(step_name=DeletionJobStep.BATCH_PROCESSING)
        self.assertEqual(batch_step.items_processed, 3)
        self.assertEqual(batch_step.total_items, 3)

    def test_batch_count_rounds_up(self):
        self.make_sheets(3)
        job = create_job(self.user)

        self.make_pipeline(BATCH_SIZE=50).run(job)

        job.refresh_from_db()
        self.assertEqual(job.total_batches, 1)
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)

    def test_other_users_untouched(self):
        sheet = SplitSheet.objects.create(
            song=Song.objects.create(final_title='Theirs'), created_by=self.other
        )
        Contributor.objects.create(
            split_sheet=sheet, user=self.other, legal_name='Stays', percentage=Decimal('50'),
            contact_email='stays@example.com'
        )
        job = create_job(self.user)

        self.make_pipeline().run(job)

        sheet.refresh_from_db()
        self.assertEqual(sheet.created_by, self.other)
        self.assertEqual(Contributor.objects.get(user=self.other).contact_email, 'stays@example.com')

    def test_identity_failure_is_non_fatal(self):
        self.identity.delete_user.side_effect = IdentityProviderError('503 from provider')
        job = create_job(self.user)

        self.make_pipeline().run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)
        step = job.steps.get(step_name=DeletionJobStep.SUPABASE_DELETE)
        self.assertEqual(step.status, DeletionJobStep.STATUS_FAILED_NON_FATAL)
        self.assertIn('503', step.failure_reason)
        self.sleep.assert_not_called()

    def test_no_external_account_skips_identity_delete(self):
        UserProfile.objects.filter(user=self.user).update(external_auth_id='')
        job = create_job(self.user)

        self.make_pipeline().run(job)

        self.identity.delete_user.assert_not_called()
        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)

    def test_already_deleted_user_fails_validation(self):
        soft_delete_user(self.user)
        job = create_job(self.user)

        self.make_pipeline(MAX_RETRIES=0).run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_NEEDS_MANUAL_REVIEW)
        self.assertIn('already deleted', job.failure_reason)
        self.assertEqual(
            self.step_status(job, DeletionJobStep.VALIDATE_USER), DeletionJobStep.STATUS_FAILED
        )

    def test_terminal_job_is_not_rerun(self):
        job = create_job(self.user)
        DeletionJob.objects.filter(pk=job.pk).update(status=DeletionJob.STATUS_COMPLETED)

        self.make_pipeline().run(job)

        self.identity.delete_user.assert_not_called()
        self.assertIsNone(UserProfile.objects.get(user=self.user).deleted_at)

    def test_only_active_jobs_run(self):
        job = create_job(self.user)
        self.assertTrue(job.is_active)

        for finished in (DeletionJob.STATUS_FAILED, DeletionJob.STATUS_CANCELLED):
            with self.subTest(status=finished):
                DeletionJob.objects.filter(pk=job.pk).update(status=finished)
                job.refresh_from_db()
                self.assertFalse(job.is_active)

                self.make_pipeline().run(job)

                self.assertEqual(self.step_status(job, DeletionJobStep.VALIDATE_USER),
                                 DeletionJobStep.STATUS_PENDING)
        self.identity.delete_user.assert_not_called()


class DeletionPipelineRetryTest(DeletionPipelineTestCase):

    def test_transient_failure_is_retried(self):
        self.identity.delete_user.side_effect = [RuntimeError('connection reset'), None]
        job = create_job(self.user)

        self.make_pipeline(RETRY_DELAYS=[1, 5, 15]).run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)
        self.assertEqual(job.retry_count, 1)
        self.assertEqual(job.failure_reason, '')
        self.sleep.assert_called_once_with(1)
        self.assertEqual(self.identity.delete_user.call_count, 2)

    def test_exhausted_retries_need_manual_review(self):
        self.identity.delete_user.side_effect = RuntimeError('boom')
        job = create_job(self.user)

        self.make_pipeline(MAX_RETRIES=3, RETRY_DELAYS=[1, 5, 15]).run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_NEEDS_MANUAL_REVIEW)
        self.assertEqual(job.retry_count, 4)
        self.assertEqual(job.failure_reason, 'boom')
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [1, 5, 15])
        self.assertEqual(self.identity.delete_user.call_count, 4)

        step = job.steps.get(step_name=DeletionJobStep.SUPABASE_DELETE)
        self.assertEqual(step.status, DeletionJobStep.STATUS_FAILED)
        self.assertEqual(step.retry_count, 4)

        escalation = AuditLog.objects.get(action='ACCOUNT_DELETION_NEEDS_MANUAL_REVIEW')
        self.assertEqual(escalation.user, self.user)
        self.assertEqual(escalation.details['jobId'], str(job.job_id))

        # Soft-delete from the first attempt stands.
        self.assertIsNotNone(UserProfile.objects.get(user=self.user).deleted_at)


class DeletionPipelineCancelResumeTest(DeletionPipelineTestCase):

    def test_cancellation_stops_the_run(self):
        job = create_job(self.user)

        def cancel(_external_id):
            DeletionJob.objects.filter(pk=job.pk).update(status=DeletionJob.STATUS_CANCELLED)

        self.identity.delete_user.side_effect = cancel

        self.make_pipeline().run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_CANCELLED)
        self.assertEqual(self.step_status(job, DeletionJobStep.CLEANUP), DeletionJobStep.STATUS_PENDING)
        self.assertFalse(AuditLog.objects.filter(action='ACCOUNT_DELETION_COMPLETED').exists())

    def test_cancelled_before_start_does_nothing(self):
        job = create_job(self.user)
        DeletionJob.objects.filter(pk=job.pk).update(status=DeletionJob.STATUS_CANCELLED)

        self.make_pipeline().run(job)

        self.assertIsNone(UserProfile.objects.get(user=self.user).deleted_at)

    def test_resume_continues_from_persisted_batch(self):
        """A job interrupted after its first batch picks up at the second."""
        self.make_sheets(5)
        job = create_job(self.user)
        pipeline = self.make_pipeline(BATCH_SIZE=2)

        # State left behind by a worker that died after batch 1.
        soft_delete_user(self.user)
        first_batch_sheets = list(
            SplitSheet.objects.filter(created_by=self.user).order_by('id').values_list('id', flat=True)[:2]
        )
        SplitSheet.objects.filter(id__in=first_batch_sheets).update(created_by=None)
        DeletionJob.objects.filter(pk=job.pk).update(
            status=DeletionJob.STATUS_IN_PROGRESS,
            started_at=timezone.now(),
            current_batch=1,
            total_batches=3,
        )
        job.steps.filter(step_name=DeletionJobStep.BATCH_PROCESSING).update(
            status=DeletionJobStep.STATUS_IN_PROGRESS,
            started_at=timezone.now(),
        )

        pipeline.run(job)

        job.refresh_from_db()
        self.assertEqual(job.status, DeletionJob.STATUS_COMPLETED)
        self.assertEqual(job.total_batches, 3)
        self.assertEqual(job.current_batch, 3)
        self.assertFalse(SplitSheet.objects.filter(created_by=self.user).exists())
        self.assertFalse(Contributor.objects.filter(user=self.user).exists())
