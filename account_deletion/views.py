import logging
import uuid

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import is_admin_user
from .models import DeletionJob, DeletionJobStep
from .pipeline import create_job, get_config
from .progress import build_progress
from .serializers import DeletionRequestSerializer
from .tasks import run_deletion_job

logger = logging.getLogger(__name__)

User = get_user_model()


class DeleteAccountView(APIView):
    """
    Account deletion.

    POST   request deletion of an account (self or admin); answers 202 with a jobId
    GET    ?jobId= progress snapshot
    DELETE ?jobId= cancel, only while the user is still being validated and
           within the cancellation window
    """
    permission_classes = [IsAuthenticated]

    def _get_job(self, request):
        raw_job_id = request.query_params.get('jobId')
        if not raw_job_id:
            return None, Response({'error': 'jobId is required'}, status=status.HTTP_400_BAD_REQUEST)
        try:
            job_id = uuid.UUID(str(raw_job_id))
        except ValueError:
            return None, Response({'error': 'Invalid jobId'}, status=status.HTTP_400_BAD_REQUEST)

        job = DeletionJob.objects.filter(job_id=job_id).prefetch_related('steps').first()
        if job is None:
            return None, Response({'error': 'Job not found'}, status=status.HTTP_404_NOT_FOUND)

        if not (
            job.user_id == request.user.id
            or job.requested_by_id == request.user.id
            or is_admin_user(request.user)
        ):
            return None, Response({'error': 'Forbidden'}, status=status.HTTP_403_FORBIDDEN)
        return job, None

    def post(self, request):
        serializer = DeletionRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Valid user ID and confirmation are required'},
                status=status.HTTP_400_BAD_REQUEST
            )
        user_id = serializer.validated_data['userId']

        if user_id != request.user.id and not is_admin_user(request.user):
            return Response(
                {'error': 'You can only delete your own account'},
                status=status.HTTP_403_FORBIDDEN
            )

        target = User.objects.filter(pk=user_id).first()
        if target is None:
            return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)

        if DeletionJob.objects.filter(user=target, status__in=DeletionJob.ACTIVE_STATUSES).exists():
            return Response(
                {'error': 'An account deletion is already in progress for this user'},
                status=status.HTTP_409_CONFLICT
            )

        try:
            with transaction.atomic():
                job = create_job(target, requested_by=request.user)
                transaction.on_commit(lambda: run_deletion_job.delay(str(job.job_id)))
        except IntegrityError:
            # Lost the race against a concurrent request for the same user.
            return Response(
                {'error': 'An account deletion is already in progress for this user'},
                status=status.HTTP_409_CONFLICT
            )

        logger.info(f"User {request.user.id} requested deletion of user {target.id} (job {job.job_id})")
        return Response(
            {'jobId': str(job.job_id), 'status': job.status},
            status=status.HTTP_202_ACCEPTED
        )

    def get(self, request):
        job, error = self._get_job(request)
        if error:
            return error
        return Response(build_progress(job))

    def delete(self, request):
        job, error = self._get_job(request)
        if error:
            return error

        window = get_config()['CANCELLATION_WINDOW_SECONDS']
        now = timezone.now()

        with transaction.atomic():
            job = DeletionJob.objects.select_for_update().get(pk=job.pk)

            if job.started_at and (now - job.started_at).total_seconds() > window:
                return Response(
                    {'error': f'Deletion can only be cancelled within {window} seconds of starting'},
                    status=status.HTTP_400_BAD_REQUEST
                )

            validate_step = job.steps.filter(step_name=DeletionJobStep.VALIDATE_USER).first()
            if (
                job.status != DeletionJob.STATUS_IN_PROGRESS
                or validate_step is None
                or validate_step.status != DeletionJobStep.STATUS_IN_PROGRESS
            ):
                return Response(
                    {'error': 'Deletion can no longer be cancelled'},
                    status=status.HTTP_400_BAD_REQUEST
                )

            job.status = DeletionJob.STATUS_CANCELLED
            job.cancellation_requested_at = now
            job.save(update_fields=['status', 'cancellation_requested_at', 'updated_at'])

            validate_step.status = DeletionJobStep.STATUS_CANCELLED
            validate_step.completed_at = now
            validate_step.save(update_fields=['status', 'completed_at'])

        logger.info(f"Deletion job {job.job_id} cancelled by user {request.user.id}")
        return Response({'success': True, 'jobId': str(job.job_id), 'status': job.status})
