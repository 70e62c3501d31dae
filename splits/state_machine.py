"""
Split sheet status transitions and per-request access derivation.
"""
from accounts.permissions import is_admin_user

from .models import SplitSheet
from .reconciliation import is_finalizable_total


# DRAFT, PUBLISHED and REVERSED have no entries: no exposed operation
# moves a sheet into or out of them.
TRANSITIONS = {
    SplitSheet.STATUS_PENDING: [SplitSheet.STATUS_DISPUTED, SplitSheet.STATUS_SIGNED],
    SplitSheet.STATUS_DISPUTED: [SplitSheet.STATUS_SIGNED],
    SplitSheet.STATUS_SIGNED: [SplitSheet.STATUS_DISPUTED],
}

CREATION_STATUSES = [SplitSheet.STATUS_PENDING, SplitSheet.STATUS_SIGNED]

FINALIZABLE_STATUSES = [SplitSheet.STATUS_PENDING, SplitSheet.STATUS_DISPUTED]
DISPUTABLE_STATUSES = [SplitSheet.STATUS_PENDING, SplitSheet.STATUS_SIGNED]


def can_transition(current, target):
    return target in TRANSITIONS.get(current, [])


class SplitSheetAccess:
    """
    What a user may do with one split sheet.

    Computed per request from the sheet, its contributors and the user's role;
    nothing here is stored.
    """

    def __init__(self, user, sheet, contributors=None):
        self.user = user
        self.sheet = sheet
        self.contributors = list(contributors if contributors is not None else sheet.contributors.all())

    @property
    def is_admin(self):
        return is_admin_user(self.user)

    @property
    def is_creator(self):
        return self.sheet.created_by_id is not None and self.sheet.created_by_id == self.user.id

    @property
    def own_contributors(self):
        return [c for c in self.contributors if c.user_id == self.user.id]

    @property
    def is_contributor(self):
        return bool(self.own_contributors)

    @property
    def is_signed(self):
        return self.sheet.status == SplitSheet.STATUS_SIGNED

    def can_view(self):
        return self.is_admin or self.is_creator or self.is_contributor

    def can_edit_sheet(self):
        """Full replace of song fields and contributors."""
        if self.is_admin:
            return True
        return self.is_creator and not self.is_signed

    def editable_contributor_ids(self):
        if self.is_admin:
            return [c.id for c in self.contributors]
        if self.is_signed:
            return []
        return [c.id for c in self.own_contributors]

    def can_edit_contributor(self, contributor):
        return contributor.id in self.editable_contributor_ids()

    def can_edit_percentage(self, contributor):
        if self.is_admin:
            return True
        if self.is_signed or not self.can_edit_contributor(contributor):
            return False
        if self.is_creator:
            return True
        return self.sheet.status == SplitSheet.STATUS_DISPUTED

    def can_finalize(self):
        return (
            (self.is_creator or self.is_admin)
            and self.sheet.status in FINALIZABLE_STATUSES
            and is_finalizable_total(self.contributors)
        )

    def can_dispute(self):
        return (
            self.is_contributor
            and not self.is_creator
            and self.sheet.status in DISPUTABLE_STATUSES
        )

    def can_delete(self):
        if self.is_admin:
            return True
        return self.is_creator and not self.is_signed

    def can_notify(self):
        return (self.is_creator or self.is_admin) and not self.is_signed

    def as_dict(self):
        """Permissions payload returned with sheet details."""
        return {
            'isCreator': self.is_creator,
            'isContributor': self.is_contributor,
            'isAdmin': self.is_admin,
            'canEdit': self.can_edit_sheet(),
            'editableContributorIds': self.editable_contributor_ids(),
            'canEditPercentage': {
                c.id: self.can_edit_percentage(c) for c in self.contributors
            },
            'canFinalize': self.can_finalize(),
            'canDispute': self.can_dispute(),
            'canDelete': self.can_delete(),
            'canNotify': self.can_notify(),
        }
