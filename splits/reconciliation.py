"""
Percentage reconciliation for split sheets.

Writers share exactly half of a song; producers hold the other half. The
writer threshold is checked with strict equality before a sheet may be SIGNED.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db.models import Sum

logger = logging.getLogger(__name__)

WRITER_TOTAL_REQUIRED = Decimal('50')

WRITER = 'WRITER'


class InvalidPercentage(ValueError):
    """Raised when a percentage cannot be read as a number."""


def to_decimal(value):
    """
    Coerce a percentage from a payload or a model field to Decimal.
    Missing values count as zero. Range is not checked here.
    """
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidPercentage(f"Invalid percentage: {value!r}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidPercentage(f"Invalid percentage: {value!r}")
    if not result.is_finite():
        raise InvalidPercentage(f"Invalid percentage: {value!r}")
    return result


def _field(contributor, model_name, payload_name):
    if isinstance(contributor, dict):
        return contributor.get(payload_name, contributor.get(model_name))
    return getattr(contributor, model_name)


def _percentage(contributor):
    return to_decimal(_field(contributor, 'percentage', 'percentage'))


def _contributor_type(contributor):
    value = _field(contributor, 'contributor_type', 'contributorType')
    return (value or WRITER).upper()


def sum_percentages(contributors):
    """Sum of every contributor percentage (model instances or payload dicts)."""
    return sum((_percentage(c) for c in contributors), Decimal('0'))


def writer_total(contributors):
    """Sum of WRITER percentages. Contributors without a type count as writers."""
    return sum(
        (_percentage(c) for c in contributors if _contributor_type(c) == WRITER),
        Decimal('0')
    )


def is_finalizable_total(contributors):
    return writer_total(contributors) == WRITER_TOTAL_REQUIRED


def recompute_total(split_sheet):
    """
    Re-sum all contributor rows of a sheet and persist total_percentage.
    Call inside the transaction that changed the contributors.
    """
    total = split_sheet.contributors.aggregate(total=Sum('percentage'))['total'] or Decimal('0')
    if split_sheet.total_percentage != total:
        logger.debug(
            f"Split sheet {split_sheet.pk} total {split_sheet.total_percentage} -> {total}"
        )
    split_sheet.total_percentage = total
    split_sheet.save(update_fields=['total_percentage', 'updated_at'])
    return total


def sheet_writer_total(split_sheet):
    """Writer total read from the database."""
    total = split_sheet.contributors.filter(
        contributor_type=WRITER
    ).aggregate(total=Sum('percentage'))['total']
    return total or Decimal('0')
