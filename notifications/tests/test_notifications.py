"""
Tests for notification fan-out and the notifications API.
"""
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from accounts.models import Label, ProOrg, Publisher, UserProfile
from notifications.models import Notification
from notifications.services import NotificationService
from splits.models import Contributor, SplitSheet, Song

User = get_user_model()


def make_user(username, **profile_fields):
    user = User.objects.create_user(username=username, password='testpass123')
    if profile_fields:
        UserProfile.objects.filter(user=user).update(**profile_fields)
    return User.objects.get(pk=user.pk)


class ResolveRecipientsTest(TestCase):
    """Contributor accounts plus staff of linked organizations."""

    def setUp(self):
        self.publisher = Publisher.objects.create(name='Big Songs')
        self.pro = ProOrg.objects.create(name='ASCAP')
        self.label = Label.objects.create(name='Night Records')

        self.creator = make_user('creator')
        self.writer = make_user('writer')
        self.publisher_staff = make_user('pubstaff', publisher=self.publisher)
        self.pro_staff = make_user('prostaff', pro_org=self.pro)
        self.label_staff = make_user('labelstaff', label=self.label)
        make_user('bystander')

        self.sheet = SplitSheet.objects.create(
            song=Song.objects.create(final_title='Song'), created_by=self.creator
        )

    def test_contributors_and_org_staff(self):
        contributors = [
            Contributor.objects.create(
                split_sheet=self.sheet, user=self.creator, legal_name='Creator',
                percentage=Decimal('25'), publisher_entity=self.publisher
            ),
            Contributor.objects.create(
                split_sheet=self.sheet, user=self.writer, legal_name='Writer',
                percentage=Decimal('25'), pro_org=self.pro, label=self.label
            ),
            Contributor.objects.create(
                split_sheet=self.sheet, legal_name='Guest', percentage=Decimal('0')
            ),
        ]

        recipients = NotificationService.resolve_recipients(contributors, actor_id=self.creator.id)

        self.assertEqual(recipients, {
            self.writer.id,
            self.publisher_staff.id,
            self.pro_staff.id,
            self.label_staff.id,
        })

    def test_actor_excluded_even_when_org_staff(self):
        contributors = [{'user_id': None, 'publisher_entity_id': self.publisher.id}]

        recipients = NotificationService.resolve_recipients(
            contributors, actor_id=self.publisher_staff.id
        )

        self.assertEqual(recipients, set())

    def test_no_links_no_recipients(self):
        self.assertEqual(NotificationService.resolve_recipients([]), set())

    def test_staff_lookup_failure_keeps_contributors(self):
        contributors = [
            {'user_id': self.writer.id, 'label_id': self.label.id},
            {'user_id': self.creator.id, 'publisher_entity_id': self.publisher.id},
        ]

        with patch(
            'notifications.services.UserProfile.objects.filter',
            side_effect=DatabaseError('profile lookup down')
        ):
            recipients = NotificationService.resolve_recipients(
                contributors, actor_id=self.creator.id
            )

        self.assertEqual(recipients, {self.writer.id})

    def test_finalized_event_survives_staff_lookup_failure(self):
        contributor = Contributor.objects.create(
            split_sheet=self.sheet, user=self.writer, legal_name='Writer',
            percentage=Decimal('50'), label=self.label
        )

        with patch(
            'notifications.services.UserProfile.objects.filter',
            side_effect=DatabaseError('profile lookup down')
        ):
            created = NotificationService.notify_finalized(
                self.sheet, [contributor], self.creator.id
            )

        self.assertEqual([n.user_id for n in created], [self.writer.id])
        self.assertFalse(Notification.objects.filter(user=self.label_staff).exists())


class BulkNotificationTest(TestCase):

    def setUp(self):
        self.users = [make_user(f'user{i}') for i in range(3)]
        self.sheet = SplitSheet.objects.create(
            song=Song.objects.create(final_title='Song'), created_by=self.users[0]
        )

    @patch('notifications.services.NotificationService.send_to_user')
    def test_one_row_and_one_push_per_recipient(self, mock_send):
        ids = [user.id for user in self.users] + [self.users[0].id, None]

        created = NotificationService.create_bulk_notifications(
            ids, Notification.TYPE_SPLIT_UPDATED, 'Title', 'Message', self.sheet
        )

        self.assertEqual(len(created), 3)
        self.assertEqual(Notification.objects.filter(split_sheet=self.sheet).count(), 3)
        self.assertEqual(mock_send.call_count, 3)

    def test_insert_failure_is_swallowed(self):
        with patch.object(Notification.objects, 'bulk_create', side_effect=Exception('db down')):
            created = NotificationService.create_bulk_notifications(
                [self.users[1].id], Notification.TYPE_SPLIT_UPDATED, 'Title', 'Message', self.sheet
            )

        self.assertEqual(created, [])
        self.assertFalse(Notification.objects.exists())

    def test_push_failure_keeps_row(self):
        with patch('notifications.services.get_channel_layer', side_effect=Exception('no redis')):
            created = NotificationService.create_bulk_notifications(
                [self.users[1].id], Notification.TYPE_GENERAL, 'Title', 'Message'
            )

        self.assertEqual(len(created), 1)
        self.assertTrue(Notification.objects.filter(user=self.users[1]).exists())

    def test_disputed_includes_creator(self):
        row = Contributor.objects.create(
            split_sheet=self.sheet, user=self.users[1], legal_name='Writer', percentage=Decimal('25')
        )

        NotificationService.notify_disputed(self.sheet, [row], self.users[1].id, 'Writer')

        notice = Notification.objects.get(user=self.users[0])
        self.assertEqual(notice.type, Notification.TYPE_SPLIT_DISPUTED)
        self.assertEqual(notice.message, 'Writer is requesting changes to the split sheet for "Song"')
        self.assertFalse(Notification.objects.filter(user=self.users[1]).exists())


class NotificationAPITest(TestCase):
    """Tests for /api/v1/notifications/."""

    def setUp(self):
        self.client = APIClient()
        self.user = make_user('reader')
        self.other = make_user('other')
        self.client.force_authenticate(user=self.user)

        for i in range(25):
            Notification.objects.create(
                user=self.user, type=Notification.TYPE_GENERAL,
                title=f'N{i}', message='m', read=i < 5
            )
        self.foreign = Notification.objects.create(
            user=self.other, type=Notification.TYPE_GENERAL, title='Other', message='m'
        )

    def test_list_defaults_to_twenty_newest(self):
        response = self.client.get('/api/v1/notifications/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['notifications']), 20)
        self.assertEqual(response.data['notifications'][0]['title'], 'N24')
        self.assertEqual(response.data['unreadCount'], 20)

    def test_list_limit_is_capped(self):
        response = self.client.get('/api/v1/notifications/', {'limit': 500})
        self.assertEqual(len(response.data['notifications']), 25)

        response = self.client.get('/api/v1/notifications/', {'limit': 3})
        self.assertEqual(len(response.data['notifications']), 3)

    def test_mark_read_by_ids_only_touches_own_rows(self):
        own = Notification.objects.filter(user=self.user, read=False).first()

        response = self.client.patch(
            '/api/v1/notifications/mark_read/',
            {'notificationIds': [own.id, self.foreign.id]},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'success': True, 'count': 1})
        own.refresh_from_db()
        self.foreign.refresh_from_db()
        self.assertTrue(own.read)
        self.assertFalse(self.foreign.read)

    def test_mark_read_all(self):
        response = self.client.patch(
            '/api/v1/notifications/mark_read/', {'markAllRead': True}, format='json'
        )

        self.assertEqual(response.data['count'], 20)
        self.assertFalse(Notification.objects.filter(user=self.user, read=False).exists())

    def test_mark_read_requires_ids_or_all(self):
        response = self.client.patch('/api/v1/notifications/mark_read/', {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid payload')

    def test_read_is_never_reverted(self):
        read = Notification.objects.filter(user=self.user, read=True).first()

        response = self.client.patch(
            '/api/v1/notifications/mark_read/', {'notificationIds': [read.id]}, format='json'
        )

        self.assertEqual(response.data['count'], 0)
        read.refresh_from_db()
        self.assertTrue(read.read)

    def test_mark_all_read_and_unread_count(self):
        response = self.client.get('/api/v1/notifications/unread_count/')
        self.assertEqual(response.data, {'count': 20})

        response = self.client.post('/api/v1/notifications/mark_all_read/')
        self.assertEqual(response.data['count'], 20)

        response = self.client.get('/api/v1/notifications/unread_count/')
        self.assertEqual(response.data, {'count': 0})
        self.foreign.refresh_from_db()
        self.assertFalse(self.foreign.read)

    def test_cannot_retrieve_foreign_notification(self):
        response = self.client.get(f'/api/v1/notifications/{self.foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_song_title_in_payload(self):
        creator = make_user('creator')
        sheet = SplitSheet.objects.create(
            song=Song.objects.create(final_title='Night Drive'), created_by=creator
        )
        Notification.objects.create(
            user=self.user, type=Notification.TYPE_SPLIT_INVITE,
            title='Invite', message='m', split_sheet=sheet
        )

        response = self.client.get('/api/v1/notifications/', {'type': 'SPLIT_INVITE'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['notifications'][0]['song_title'], 'Night Drive')
