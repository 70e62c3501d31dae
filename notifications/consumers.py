import json
from channels.generic.websocket import AsyncWebsocketConsumer
from channels.db import database_sync_to_async
from django.contrib.auth.models import AnonymousUser


class NotificationConsumer(AsyncWebsocketConsumer):
    """
    WebSocket feed of a user's split sheet notifications.
    Each user has their own group, notifications_<user id>.
    """

    async def connect(self):
        self.user = self.scope.get('user')

        if not self.user or isinstance(self.user, AnonymousUser) or not self.user.is_authenticated:
            await self.close(code=4001)
            return

        self.group_name = f'notifications_{self.user.id}'
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        unread = await self.unread_count()
        await self.send(text_data=json.dumps({
            'type': 'connection_established',
            'unreadCount': unread
        }))

    async def disconnect(self, close_code):
        if hasattr(self, 'group_name'):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        """Supports ping, mark_read and mark_all_read."""
        try:
            data = json.loads(text_data)
            if not isinstance(data, dict):
                raise ValueError('expected an object')
        except (TypeError, ValueError):
            await self.send(text_data=json.dumps({
                'type': 'error',
                'message': 'Invalid JSON'
            }))
            return

        message_type = data.get('type')
        if message_type == 'ping':
            await self.send(text_data=json.dumps({
                'type': 'pong',
                'timestamp': data.get('timestamp')
            }))
        elif message_type == 'mark_read':
            marked = await self.mark_notification_read(data.get('notification_id'))
            await self.send_read_ack(marked, data.get('notification_id'))
        elif message_type == 'mark_all_read':
            marked = await self.mark_all_read()
            await self.send_read_ack(marked)
        else:
            await self.send(text_data=json.dumps({
                'type': 'error',
                'message': f'Unknown message type: {message_type}'
            }))

    async def send_read_ack(self, marked, notification_id=None):
        """Reply to mark_read / mark_all_read with the new unread count."""
        unread = await self.unread_count()
        await self.send(text_data=json.dumps({
            'type': 'marked_read',
            'notification_id': notification_id,
            'marked': marked,
            'unreadCount': unread
        }))

    async def notification_message(self, event):
        """Group event sent by NotificationService.send_to_user."""
        await self.send(text_data=json.dumps({
            'type': 'notification',
            'notification': event['notification']
        }))

    @database_sync_to_async
    def unread_count(self):
        from .models import Notification
        return Notification.objects.filter(user=self.user, read=False).count()

    @database_sync_to_async
    def mark_notification_read(self, notification_id):
        """Only the socket owner's rows; unknown or malformed ids mark nothing."""
        from .models import Notification
        try:
            notification = Notification.objects.get(id=int(notification_id), user=self.user)
        except (Notification.DoesNotExist, TypeError, ValueError):
            return 0
        if notification.read:
            return 0
        notification.mark_as_read()
        return 1

    @database_sync_to_async
    def mark_all_read(self):
        from .models import Notification
        return Notification.objects.filter(user=self.user, read=False).update(read=True)
