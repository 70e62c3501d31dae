from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django_ratelimit.decorators import ratelimit
from django.utils.decorators import method_decorator

from accounts.permissions import IsActiveAccount
from .models import Notification
from .serializers import NotificationSerializer, MarkReadSerializer

DEFAULT_LIMIT = 20
MAX_LIMIT = 50


class NotificationViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    ViewSet for the current user's notifications.

    Provides:
    - list: latest notifications (?limit=, default 20, max 50) with unread count
    - retrieve: single notification detail
    - mark_read: mark the given notification ids (or all) as read
    - mark_all_read: mark all user's notifications as read
    - unread_count: count of unread notifications
    """
    permission_classes = [IsAuthenticated, IsActiveAccount]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        """Filter notifications to current user only"""
        queryset = Notification.objects.filter(user=self.request.user)

        notification_type = self.request.query_params.get('type')
        if notification_type:
            queryset = queryset.filter(type=notification_type)

        return queryset.select_related('split_sheet__song')

    def list(self, request):
        try:
            limit = int(request.query_params.get('limit', DEFAULT_LIMIT))
        except (TypeError, ValueError):
            limit = DEFAULT_LIMIT
        limit = max(1, min(limit, MAX_LIMIT))

        notifications = self.get_queryset()[:limit]
        unread = Notification.objects.filter(user=request.user, read=False).count()

        return Response({
            'notifications': NotificationSerializer(notifications, many=True).data,
            'unreadCount': unread,
        })

    @action(detail=False, methods=['patch', 'post'])
    def mark_read(self, request):
        """Mark notifications as read. Read state never goes back to unread."""
        serializer = MarkReadSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': 'Invalid payload'}, status=status.HTTP_400_BAD_REQUEST)

        queryset = Notification.objects.filter(user=request.user, read=False)
        if not serializer.validated_data.get('markAllRead'):
            queryset = queryset.filter(id__in=serializer.validated_data['notificationIds'])
        updated_count = queryset.update(read=True)

        return Response({'success': True, 'count': updated_count})

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        """Mark all user's notifications as read"""
        updated_count = Notification.objects.filter(
            user=request.user,
            read=False
        ).update(read=True)

        return Response(
            {'success': True, 'count': updated_count},
            status=status.HTTP_200_OK
        )

    @method_decorator(ratelimit(key='user', rate='100/m', method='GET'))
    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        """Get count of unread notifications"""
        count = Notification.objects.filter(
            user=request.user,
            read=False
        ).count()

        return Response(
            {'count': count},
            status=status.HTTP_200_OK
        )
