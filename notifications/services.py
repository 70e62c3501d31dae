import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from accounts.models import UserProfile
from .models import Notification
from .serializers import NotificationSerializer

logger = logging.getLogger(__name__)


def _value(contributor, name):
    if isinstance(contributor, dict):
        return contributor.get(name)
    return getattr(contributor, name, None)


def _song_title(split_sheet):
    song = getattr(split_sheet, 'song', None)
    return (song.final_title if song else None) or 'Untitled'


class NotificationService:
    """
    Fan-out of split sheet events to every account involved.

    Rows are the source of truth; each created row is also pushed to the
    recipient's WebSocket group. Nothing here raises into the caller:
    failures are logged and the sheet mutation that triggered them stands.
    """

    @staticmethod
    def resolve_recipients(contributors, actor_id=None):
        """
        Distinct user ids to notify for a set of contributors.

        Args:
            contributors: Contributor instances (or dicts with user_id,
                publisher_entity_id, pro_org_id, label_id)
            actor_id: id of the user performing the action, never notified

        Returns:
            set of user ids: linked contributor accounts, then staff profiles
            linked to any contributor's publisher, PRO or label. A failed
            lookup is logged and yields whatever was resolved before it.
        """
        recipients = set()

        try:
            contributors = list(contributors)
            for contributor in contributors:
                user_id = _value(contributor, 'user_id')
                if user_id:
                    recipients.add(user_id)

            org_links = [
                ('publisher_id', 'publisher_entity_id'),
                ('pro_org_id', 'pro_org_id'),
                ('label_id', 'label_id'),
            ]
            for profile_field, contributor_field in org_links:
                org_ids = {
                    _value(c, contributor_field) for c in contributors
                    if _value(c, contributor_field)
                }
                if not org_ids:
                    continue
                staff = UserProfile.objects.filter(
                    **{f'{profile_field}__in': org_ids}
                ).values_list('user_id', flat=True)
                recipients.update(staff)
        except Exception as e:
            logger.error(
                f"Failed to resolve notification recipients: {str(e)}",
                exc_info=True
            )

        recipients.discard(actor_id)
        recipients.discard(None)
        return recipients

    @staticmethod
    def create_bulk_notifications(user_ids, notification_type, title, message, split_sheet=None):
        """
        Persist one notification per recipient in a single insert and push
        them over WebSocket.

        Returns:
            list of created Notification instances (empty on failure)
        """
        user_ids = sorted(set(uid for uid in user_ids if uid))
        if not user_ids:
            return []

        try:
            notifications = Notification.objects.bulk_create([
                Notification(
                    user_id=user_id,
                    type=notification_type,
                    title=title,
                    message=message,
                    split_sheet=split_sheet,
                )
                for user_id in user_ids
            ])
        except Exception as e:
            logger.error(
                f"Failed to create {notification_type} notifications for "
                f"{len(user_ids)} users: {str(e)}",
                exc_info=True
            )
            return []

        for notification in notifications:
            NotificationService.send_to_user(notification.user_id, notification)

        logger.info(
            f"Created {len(notifications)} {notification_type} notifications"
            f" for split sheet {split_sheet.pk if split_sheet else None}"
        )
        return notifications

    @staticmethod
    def send_to_user(user_id, notification):
        """
        Send notification to user via WebSocket channel layer.
        Delivery is best effort; the persisted row is what the API serves.
        """
        try:
            channel_layer = get_channel_layer()
            if channel_layer is None:
                return
            async_to_sync(channel_layer.group_send)(
                f'notifications_{user_id}',
                {
                    'type': 'notification_message',
                    'notification': NotificationSerializer(notification).data
                }
            )
        except Exception as e:
            logger.warning(f"WebSocket push to user {user_id} failed: {str(e)}")

    # Event helpers

    @staticmethod
    def notify_invite(split_sheet, user_ids):
        """SPLIT_INVITE to accounts newly linked to the sheet."""
        return NotificationService.create_bulk_notifications(
            user_ids,
            Notification.TYPE_SPLIT_INVITE,
            'Split Sheet Invitation',
            f'You have been added as a contributor to the split sheet for "{_song_title(split_sheet)}"',
            split_sheet,
        )

    @staticmethod
    def notify_updated(split_sheet, user_ids):
        return NotificationService.create_bulk_notifications(
            user_ids,
            Notification.TYPE_SPLIT_UPDATED,
            'Split Sheet Updated',
            f'The split sheet for "{_song_title(split_sheet)}" has been updated',
            split_sheet,
        )

    @staticmethod
    def notify_finalized(split_sheet, contributors, actor_id):
        recipients = NotificationService.resolve_recipients(contributors, actor_id)
        return NotificationService.create_bulk_notifications(
            recipients,
            Notification.TYPE_SPLIT_FINALIZED,
            'Split Sheet Finalized',
            f'The split sheet for "{_song_title(split_sheet)}" has been finalized',
            split_sheet,
        )

    @staticmethod
    def notify_disputed(split_sheet, contributors, actor_id, disputer_name):
        """SPLIT_DISPUTED to every resolved party plus the creator."""
        recipients = NotificationService.resolve_recipients(contributors, actor_id)
        if split_sheet.created_by_id and split_sheet.created_by_id != actor_id:
            recipients.add(split_sheet.created_by_id)
        return NotificationService.create_bulk_notifications(
            recipients,
            Notification.TYPE_SPLIT_DISPUTED,
            'Split Sheet Disputed',
            f'{disputer_name} is requesting changes to the split sheet for "{_song_title(split_sheet)}"',
            split_sheet,
        )

    @staticmethod
    def notify_percentage_changed(split_sheet, contributor_name, percentage):
        """A contributor changed their own share while the sheet is disputed."""
        if not split_sheet.created_by_id:
            return []
        return NotificationService.create_bulk_notifications(
            [split_sheet.created_by_id],
            Notification.TYPE_SPLIT_DISPUTED,
            'Percentage Changed',
            f'{contributor_name} changed their percentage to {percentage}% '
            f'on the split sheet for "{_song_title(split_sheet)}"',
            split_sheet,
        )

    @staticmethod
    def notify_ready(split_sheet):
        """Writer percentages total 50: tell the creator the sheet can be finalized."""
        if not split_sheet.created_by_id:
            return []
        return NotificationService.create_bulk_notifications(
            [split_sheet.created_by_id],
            Notification.TYPE_SPLIT_READY,
            'Ready to Finalize',
            f'Writer percentages for "{_song_title(split_sheet)}" now total 50%. '
            f'The split sheet is ready to be finalized',
            split_sheet,
        )

    @staticmethod
    def notify_contributor_updated(split_sheet, contributor_name):
        """A contributor edited their own details."""
        if not split_sheet.created_by_id:
            return []
        return NotificationService.create_bulk_notifications(
            [split_sheet.created_by_id],
            Notification.TYPE_SPLIT_UPDATED,
            'Contributor Details Updated',
            f'{contributor_name} updated their details on the split sheet for "{_song_title(split_sheet)}"',
            split_sheet,
        )

    @staticmethod
    def broadcast_update(split_sheet, contributors, actor_id):
        """Manual re-notify of every resolved party."""
        recipients = NotificationService.resolve_recipients(contributors, actor_id)
        NotificationService.create_bulk_notifications(
            recipients,
            Notification.TYPE_SPLIT_UPDATED,
            'Split Sheet Update',
            f'The split sheet for "{_song_title(split_sheet)}" has been updated. '
            f'Please review your contributions',
            split_sheet,
        )
        return recipients
