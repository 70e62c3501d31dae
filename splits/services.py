"""
Split sheet operations.

Each mutating operation runs in one transaction, then fans out notifications
once the transaction has committed. Rule violations raise SplitSheetError
subclasses that carry the HTTP status the API answers with.
"""
import logging

from django.db import transaction

from notifications.models import Notification
from notifications.services import NotificationService
from .models import AuditLog, Contributor, Signature, SplitSheet, Song
from .reconciliation import (
    WRITER_TOTAL_REQUIRED,
    is_finalizable_total,
    recompute_total,
    sheet_writer_total,
    writer_total,
)
from .state_machine import SplitSheetAccess, can_transition

logger = logging.getLogger(__name__)

READY_STATUSES = [SplitSheet.STATUS_PENDING, SplitSheet.STATUS_DISPUTED]


class SplitSheetError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidSplitSheet(SplitSheetError):
    status_code = 400


class AccessDenied(SplitSheetError):
    status_code = 403


class SplitSheetNotFound(SplitSheetError):
    status_code = 404


class VersionConflict(SplitSheetError):
    status_code = 409


def log_action(action, user=None, split_sheet=None, **details):
    return AuditLog.objects.create(
        action=action,
        user=user,
        split_sheet=split_sheet,
        details=details,
    )


def _contributor_name(contributor):
    return contributor.stage_name or contributor.legal_name or 'A contributor'


def _create_contributors(split_sheet, contributors_data):
    return Contributor.objects.bulk_create([
        Contributor(split_sheet=split_sheet, **data) for data in contributors_data
    ])


def create_split_sheet(user, data):
    """
    Create a song (unless an existing one is given), its split sheet and the
    initial contributors.

    A sheet created as SIGNED must already have writers totalling 50.
    """
    contributors_data = data['contributors']
    status = data.get('status') or SplitSheet.STATUS_PENDING

    if status == SplitSheet.STATUS_SIGNED and not is_finalizable_total(contributors_data):
        raise InvalidSplitSheet(
            f"Writer percentages must total {WRITER_TOTAL_REQUIRED}% to finalize"
        )

    with transaction.atomic():
        song = data.get('song')
        if song is None:
            song = Song.objects.create(
                final_title=data['final_title'],
                working_title=data.get('working_title') or None,
                iswc=data.get('iswc') or None,
                creation_date=data.get('creation_date'),
            )

        split_sheet = SplitSheet.objects.create(
            song=song,
            created_by=user,
            version=1,
            agreement_date=data.get('agreement_date'),
            status=status,
            clauses=data.get('clauses') or '',
        )
        contributors = _create_contributors(split_sheet, contributors_data)
        recompute_total(split_sheet)

        log_action(
            'CREATED',
            user=user,
            split_sheet=split_sheet,
            status=status,
            contributors=len(contributors),
        )

    logger.info(f"Split sheet {split_sheet.id} created by user {user.id} as {status}")

    if status == SplitSheet.STATUS_SIGNED:
        NotificationService.notify_finalized(split_sheet, contributors, user.id)
    else:
        recipients = NotificationService.resolve_recipients(contributors, user.id)
        NotificationService.notify_invite(split_sheet, recipients)

    return split_sheet


def replace_split_sheet(user, split_sheet, data):
    """
    Full replace: update song fields, delete every contributor and recreate
    them from the payload. Writers must total exactly 50.
    """
    access = SplitSheetAccess(user, split_sheet)
    if not access.can_edit_sheet():
        if access.is_creator and access.is_signed:
            raise AccessDenied('Finalized split sheets can only be edited by an admin')
        raise AccessDenied('Forbidden')

    contributors_data = data['contributors']
    if writer_total(contributors_data) != WRITER_TOTAL_REQUIRED:
        raise InvalidSplitSheet(f"Writer percentages must total {WRITER_TOTAL_REQUIRED}%")

    expected_version = data.get('version')

    with transaction.atomic():
        locked = SplitSheet.objects.select_for_update().get(pk=split_sheet.pk)
        if expected_version is not None and expected_version != locked.version:
            raise VersionConflict(
                f"Split sheet was modified (version {locked.version}, expected {expected_version})"
            )

        previous_user_ids = set(
            locked.contributors.exclude(user__isnull=True).values_list('user_id', flat=True)
        )

        song = locked.song
        song_fields = []
        for field in ('final_title', 'working_title', 'iswc', 'creation_date'):
            if field in data:
                setattr(song, field, data[field])
                song_fields.append(field)
        if song_fields:
            song.save(update_fields=song_fields + ['updated_at'])

        if 'agreement_date' in data:
            locked.agreement_date = data['agreement_date']
        if 'clauses' in data:
            locked.clauses = data['clauses'] or ''
        locked.version += 1
        locked.save(update_fields=['agreement_date', 'clauses', 'version', 'updated_at'])

        locked.contributors.all().delete()
        contributors = _create_contributors(locked, contributors_data)
        recompute_total(locked)

        log_action(
            'UPDATED',
            user=user,
            split_sheet=locked,
            version=locked.version,
            contributors=len(contributors),
        )

    logger.info(f"Split sheet {locked.id} replaced by user {user.id} (version {locked.version})")

    newly_linked = {
        c.user_id for c in contributors
        if c.user_id and c.user_id not in previous_user_ids and c.user_id != user.id
    }
    others = NotificationService.resolve_recipients(contributors, user.id) - newly_linked
    NotificationService.notify_invite(locked, newly_linked)
    NotificationService.notify_updated(locked, others)

    return locked


def update_contributor(user, split_sheet, contributor_id, fields):
    """
    Patch allow-listed fields of one contributor row.

    Args:
        fields: validated ContributorPatchSerializer data (model field names)
    """
    contributor = Contributor.objects.filter(pk=contributor_id).first()
    if contributor is None:
        raise SplitSheetNotFound('Contributor not found')
    if contributor.split_sheet_id != split_sheet.id:
        raise InvalidSplitSheet('Contributor does not belong to this split sheet')

    access = SplitSheetAccess(user, split_sheet)
    if not access.is_admin and contributor.user_id != user.id:
        raise AccessDenied('Forbidden')
    if not access.can_edit_contributor(contributor):
        raise AccessDenied('Finalized split sheets cannot be edited')
    if not fields:
        raise InvalidSplitSheet('No valid fields to update')

    percentage_changed = 'percentage' in fields
    if percentage_changed and not access.can_edit_percentage(contributor):
        raise AccessDenied('Percentages can only be changed while the split sheet is disputed')

    with transaction.atomic():
        locked = SplitSheet.objects.select_for_update().get(pk=split_sheet.pk)
        for field, value in fields.items():
            setattr(contributor, field, value)
        contributor.save(update_fields=list(fields) + ['updated_at'])

        if percentage_changed:
            recompute_total(locked)
        locked.version += 1
        locked.save(update_fields=['version', 'updated_at'])

        log_action(
            'CONTRIBUTOR_UPDATED',
            user=user,
            split_sheet=locked,
            contributor_id=contributor.id,
            fields=sorted(fields),
        )

    if percentage_changed:
        if (
            contributor.user_id == user.id
            and not access.is_creator
            and locked.status == SplitSheet.STATUS_DISPUTED
        ):
            NotificationService.notify_percentage_changed(
                locked, _contributor_name(contributor), contributor.percentage
            )
        # Level triggered: fires on every change that lands on exactly 50.
        if locked.status in READY_STATUSES and sheet_writer_total(locked) == WRITER_TOTAL_REQUIRED:
            NotificationService.notify_ready(locked)
    elif not access.is_creator:
        NotificationService.notify_contributor_updated(locked, _contributor_name(contributor))

    return contributor


def finalize_split_sheet(user, split_sheet):
    """PENDING or DISPUTED to SIGNED. Creator or admin, writers must total 50."""
    access = SplitSheetAccess(user, split_sheet)
    if not (access.is_creator or access.is_admin):
        raise AccessDenied('Forbidden')
    if not can_transition(split_sheet.status, SplitSheet.STATUS_SIGNED):
        raise InvalidSplitSheet('Split sheet cannot be finalized in its current status')

    with transaction.atomic():
        locked = SplitSheet.objects.select_for_update().get(pk=split_sheet.pk)
        if not can_transition(locked.status, SplitSheet.STATUS_SIGNED):
            raise InvalidSplitSheet('Split sheet cannot be finalized in its current status')
        if sheet_writer_total(locked) != WRITER_TOTAL_REQUIRED:
            raise InvalidSplitSheet(
                f"Writer percentages must total {WRITER_TOTAL_REQUIRED}% before finalizing"
            )

        previous_status = locked.status
        locked.status = SplitSheet.STATUS_SIGNED
        locked.disputed_by = None
        # Version bumps on every mutation, not only on PUT.
        locked.version += 1
        locked.save(update_fields=['status', 'disputed_by', 'version', 'updated_at'])
        log_action('FINALIZED', user=user, split_sheet=locked, previous_status=previous_status)

    logger.info(f"Split sheet {locked.id} finalized by user {user.id}")
    NotificationService.notify_finalized(locked, locked.contributors.all(), user.id)
    return locked


def dispute_split_sheet(user, split_sheet):
    """PENDING or SIGNED to DISPUTED, requested by a linked non-creator contributor."""
    access = SplitSheetAccess(user, split_sheet)
    if not access.is_contributor or access.is_creator:
        raise AccessDenied('Only non-creator contributors can dispute')
    if not can_transition(split_sheet.status, SplitSheet.STATUS_DISPUTED):
        raise InvalidSplitSheet('Only pending or finalized split sheets can be disputed')

    with transaction.atomic():
        locked = SplitSheet.objects.select_for_update().get(pk=split_sheet.pk)
        if not can_transition(locked.status, SplitSheet.STATUS_DISPUTED):
            raise InvalidSplitSheet('Only pending or finalized split sheets can be disputed')

        previous_status = locked.status
        locked.status = SplitSheet.STATUS_DISPUTED
        locked.disputed_by = user
        locked.version += 1
        locked.save(update_fields=['status', 'disputed_by', 'version', 'updated_at'])
        log_action('DISPUTED', user=user, split_sheet=locked, previous_status=previous_status)

    logger.info(f"Split sheet {locked.id} disputed by user {user.id}")
    disputer = access.own_contributors[0]
    NotificationService.notify_disputed(
        locked, locked.contributors.all(), user.id, _contributor_name(disputer)
    )
    return locked


def notify_parties(user, split_sheet):
    """Manual re-notify. Returns the number of accounts notified."""
    access = SplitSheetAccess(user, split_sheet)
    if not (access.is_creator or access.is_admin):
        raise AccessDenied('Only the creator or an admin can send notifications')
    if access.is_signed:
        raise InvalidSplitSheet('Cannot notify on finalized split sheets')

    recipients = NotificationService.broadcast_update(split_sheet, access.contributors, user.id)
    return len(recipients)


def delete_split_sheet(user, split_sheet):
    """
    Delete a sheet and everything hanging off it, then its song if no other
    sheet uses it. SIGNED sheets need an admin.
    """
    access = SplitSheetAccess(user, split_sheet)
    if not access.can_delete():
        if access.is_creator and access.is_signed:
            raise AccessDenied('Only an admin can delete a finalized split sheet')
        raise AccessDenied('Forbidden')

    sheet_id = split_sheet.id
    song_id = split_sheet.song_id
    song_title = split_sheet.song.final_title

    with transaction.atomic():
        Notification.objects.filter(split_sheet_id=sheet_id).delete()
        AuditLog.objects.filter(split_sheet_id=sheet_id).delete()
        Signature.objects.filter(split_sheet_id=sheet_id).delete()
        Contributor.objects.filter(split_sheet_id=sheet_id).delete()
        SplitSheet.objects.filter(pk=sheet_id).delete()

        song_deleted = False
        if not SplitSheet.objects.filter(song_id=song_id).exists():
            Song.objects.filter(pk=song_id).delete()
            song_deleted = True

        log_action(
            'DELETED',
            user=user,
            split_sheet_id=sheet_id,
            song_title=song_title,
            song_deleted=song_deleted,
        )

    logger.info(f"Split sheet {sheet_id} deleted by user {user.id} (song deleted: {song_deleted})")
