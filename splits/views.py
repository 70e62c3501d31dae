import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db.models import Q
from django.http import Http404
from django_filters import rest_framework as django_filters
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import APIException
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsActiveAccount
from . import services
from .models import SplitSheet
from .serializers import (
    ContributorPatchSerializer,
    ContributorSerializer,
    SplitSheetReplaceSerializer,
    SplitSheetSerializer,
    SplitSheetWriteSerializer,
)
from .services import SplitSheetError
from .state_machine import SplitSheetAccess

logger = logging.getLogger(__name__)


class SplitSheetFilter(django_filters.FilterSet):
    """Filter for SplitSheet model."""

    status = django_filters.ChoiceFilter(choices=SplitSheet.STATUS_CHOICES)
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = SplitSheet
        fields = ['status']

    def filter_search(self, queryset, name, value):
        """Search by song title."""
        return queryset.filter(
            Q(song__final_title__icontains=value) |
            Q(song__working_title__icontains=value)
        )


class SplitSheetViewSet(viewsets.GenericViewSet):
    """
    Split sheets of the current user.

    Provides:
    - list: sheets I created (?mentioned=true adds sheets I contribute to)
    - create: new sheet with its song and contributors
    - retrieve: sheet details with the caller's permissions
    - update: full replace of song fields and contributors
    - destroy: delete the sheet and its dependent rows
    - contributor: patch one contributor row
    - finalize / dispute: status transitions
    - notify: re-send an update notification to every party
    """
    permission_classes = [IsAuthenticated, IsActiveAccount]
    serializer_class = SplitSheetSerializer
    filterset_class = SplitSheetFilter
    filter_backends = [django_filters.DjangoFilterBackend]
    lookup_value_regex = r'\d+'

    def get_queryset(self):
        return SplitSheet.objects.select_related('song').prefetch_related(
            'contributors', 'signatures'
        )

    def handle_exception(self, exc):
        if isinstance(exc, SplitSheetError):
            return Response({'error': exc.message}, status=exc.status_code)
        if isinstance(exc, (APIException, Http404, DjangoPermissionDenied)):
            return super().handle_exception(exc)
        logger.error(f"Split sheet {self.action} failed: {str(exc)}", exc_info=True)
        return Response(
            {'error': 'Internal server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    def get_sheet(self, pk):
        sheet = self.get_queryset().filter(pk=pk).first()
        if sheet is None:
            raise services.SplitSheetNotFound('Not found')
        return sheet

    def get_viewable_sheet(self, pk):
        sheet = self.get_sheet(pk)
        if not SplitSheetAccess(self.request.user, sheet).can_view():
            raise services.AccessDenied('Forbidden')
        return sheet

    def sheet_payload(self, sheet):
        sheet = self.get_sheet(sheet.pk)
        return SplitSheetSerializer(sheet).data

    def list(self, request):
        user = request.user
        queryset = self.get_queryset()
        if request.query_params.get('mentioned', '').lower() == 'true':
            queryset = queryset.filter(
                Q(created_by=user) | Q(contributors__user=user)
            ).distinct()
        else:
            queryset = queryset.filter(created_by=user)

        queryset = self.filter_queryset(queryset).order_by('-created_at')
        return Response({'splits': SplitSheetSerializer(queryset, many=True).data})

    def create(self, request):
        serializer = SplitSheetWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid payload', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        sheet = services.create_split_sheet(request.user, serializer.validated_data)
        return Response({'split': self.sheet_payload(sheet)}, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        sheet = self.get_viewable_sheet(pk)
        access = SplitSheetAccess(request.user, sheet)
        return Response({
            'split': SplitSheetSerializer(sheet).data,
            'permissions': access.as_dict(),
        })

    def update(self, request, pk=None):
        sheet = self.get_sheet(pk)
        serializer = SplitSheetReplaceSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid contributors', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        sheet = services.replace_split_sheet(request.user, sheet, serializer.validated_data)
        return Response({'success': True, 'split': self.sheet_payload(sheet)})

    def destroy(self, request, pk=None):
        sheet = self.get_sheet(pk)
        services.delete_split_sheet(request.user, sheet)
        return Response({'success': True})

    @action(detail=True, methods=['patch'])
    def contributor(self, request, pk=None):
        """Patch allow-listed fields of a single contributor."""
        sheet = self.get_sheet(pk)

        try:
            contributor_id = int(request.data.get('contributorId') or 0)
        except (TypeError, ValueError):
            contributor_id = 0
        if not contributor_id:
            return Response(
                {'error': 'contributorId is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        payload = {
            key: value for key, value in request.data.items()
            if key in ContributorPatchSerializer.ALLOWED_FIELDS
        }
        serializer = ContributorPatchSerializer(data=payload)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid contributor fields', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        contributor = services.update_contributor(
            request.user, sheet, contributor_id, serializer.validated_data
        )
        return Response({'contributor': ContributorSerializer(contributor).data})

    @action(detail=True, methods=['post'])
    def finalize(self, request, pk=None):
        sheet = self.get_sheet(pk)
        sheet = services.finalize_split_sheet(request.user, sheet)
        return Response({'split': self.sheet_payload(sheet)})

    @action(detail=True, methods=['post'])
    def dispute(self, request, pk=None):
        sheet = self.get_sheet(pk)
        sheet = services.dispute_split_sheet(request.user, sheet)
        return Response({'split': self.sheet_payload(sheet)})

    @action(detail=True, methods=['post'])
    def notify(self, request, pk=None):
        sheet = self.get_sheet(pk)
        notified = services.notify_parties(request.user, sheet)
        return Response({'success': True, 'notified': notified})
