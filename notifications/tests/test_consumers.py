"""
Tests for the notifications WebSocket consumer.

TransactionTestCase: the consumer's database calls close stale connections,
which would break the wrapping transaction of a plain TestCase.
"""
from asgiref.sync import sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TransactionTestCase

from notifications.consumers import NotificationConsumer
from notifications.models import Notification

User = get_user_model()


class NotificationConsumerTest(TransactionTestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='listener', password='x')
        self.other = User.objects.create_user(username='other', password='x')
        self.first = Notification.objects.create(
            user=self.user, type=Notification.TYPE_GENERAL, title='First', message='m'
        )
        self.second = Notification.objects.create(
            user=self.user, type=Notification.TYPE_GENERAL, title='Second', message='m'
        )
        self.foreign = Notification.objects.create(
            user=self.other, type=Notification.TYPE_GENERAL, title='Foreign', message='m'
        )

    async def connect(self, user):
        communicator = WebsocketCommunicator(NotificationConsumer.as_asgi(), '/ws/notifications/')
        communicator.scope['user'] = user
        connected, code = await communicator.connect()
        return communicator, connected, code

    async def is_read(self, notification):
        return await sync_to_async(
            lambda: Notification.objects.get(pk=notification.pk).read
        )()

    async def test_anonymous_connection_closed(self):
        communicator, connected, code = await self.connect(AnonymousUser())

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    async def test_connect_reports_unread_count(self):
        communicator, connected, _ = await self.connect(self.user)
        self.assertTrue(connected)

        message = await communicator.receive_json_from()
        self.assertEqual(message, {'type': 'connection_established', 'unreadCount': 2})

        await communicator.send_json_to({'type': 'ping', 'timestamp': 123})
        self.assertEqual(await communicator.receive_json_from(), {'type': 'pong', 'timestamp': 123})

        await communicator.disconnect()

    async def test_mark_read_acknowledges_own_rows_only(self):
        communicator, _, _ = await self.connect(self.user)
        await communicator.receive_json_from()

        await communicator.send_json_to({'type': 'mark_read', 'notification_id': self.first.pk})
        ack = await communicator.receive_json_from()
        self.assertEqual(ack['type'], 'marked_read')
        self.assertEqual(ack['marked'], 1)
        self.assertEqual(ack['unreadCount'], 1)
        self.assertTrue(await self.is_read(self.first))

        await communicator.send_json_to({'type': 'mark_read', 'notification_id': self.foreign.pk})
        ack = await communicator.receive_json_from()
        self.assertEqual(ack['marked'], 0)
        self.assertEqual(ack['unreadCount'], 1)
        self.assertFalse(await self.is_read(self.foreign))

        await communicator.send_json_to({'type': 'mark_read', 'notification_id': 'not-a-number'})
        ack = await communicator.receive_json_from()
        self.assertEqual(ack['marked'], 0)

        await communicator.disconnect()

    async def test_mark_all_read(self):
        communicator, _, _ = await self.connect(self.user)
        await communicator.receive_json_from()

        await communicator.send_json_to({'type': 'mark_all_read'})
        ack = await communicator.receive_json_from()

        self.assertEqual(ack['marked'], 2)
        self.assertEqual(ack['unreadCount'], 0)
        self.assertFalse(await self.is_read(self.foreign))

        await communicator.disconnect()

    async def test_invalid_and_unknown_messages(self):
        communicator, _, _ = await self.connect(self.user)
        await communicator.receive_json_from()

        await communicator.send_to(text_data='not json')
        self.assertEqual(
            await communicator.receive_json_from(), {'type': 'error', 'message': 'Invalid JSON'}
        )

        await communicator.send_json_to({'type': 'subscribe'})
        message = await communicator.receive_json_from()
        self.assertEqual(message['type'], 'error')
        self.assertIn('subscribe', message['message'])

        await communicator.disconnect()

    async def test_group_event_is_forwarded(self):
        communicator, _, _ = await self.connect(self.user)
        await communicator.receive_json_from()

        await get_channel_layer().group_send(
            f'notifications_{self.user.id}',
            {'type': 'notification_message', 'notification': {'id': self.second.pk, 'title': 'Second'}}
        )

        self.assertEqual(await communicator.receive_json_from(), {
            'type': 'notification',
            'notification': {'id': self.second.pk, 'title': 'Second'},
        })

        await communicator.disconnect()
