from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.models import Label, ProOrg, Publisher
from .models import Contributor, Signature, SplitSheet, Song

User = get_user_model()

PERCENTAGE_FIELD = dict(max_digits=7, decimal_places=2, coerce_to_string=False)


class SongSerializer(serializers.ModelSerializer):
    class Meta:
        model = Song
        fields = ['id', 'working_title', 'final_title', 'iswc', 'creation_date', 'created_at', 'updated_at']
        read_only_fields = fields


class ContributorSerializer(serializers.ModelSerializer):
    """Serializer for Contributor model."""

    display_name = serializers.CharField(read_only=True)
    contributor_type_display = serializers.CharField(source='get_contributor_type_display', read_only=True)
    percentage = serializers.DecimalField(read_only=True, **PERCENTAGE_FIELD)
    publisher_share = serializers.DecimalField(read_only=True, allow_null=True, **PERCENTAGE_FIELD)

    class Meta:
        model = Contributor
        fields = [
            'id', 'split_sheet', 'user', 'legal_name', 'stage_name', 'display_name',
            'role', 'contributor_type', 'contributor_type_display', 'percentage',
            'pro_affiliation', 'ipi_number', 'pro_org', 'publisher', 'publisher_share',
            'publisher_entity', 'label', 'contact_email', 'contact_phone', 'address',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class SignatureSerializer(serializers.ModelSerializer):
    class Meta:
        model = Signature
        fields = ['id', 'split_sheet', 'user', 'contributor', 'signed_at', 'ip_address', 'created_at']
        read_only_fields = fields


class SplitSheetSerializer(serializers.ModelSerializer):
    """Split sheet with its song, contributors and signatures."""

    song = SongSerializer(read_only=True)
    contributors = ContributorSerializer(many=True, read_only=True)
    signatures = SignatureSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    total_percentage = serializers.DecimalField(read_only=True, **PERCENTAGE_FIELD)

    class Meta:
        model = SplitSheet
        fields = [
            'id', 'song', 'created_by', 'version', 'agreement_date', 'status',
            'status_display', 'total_percentage', 'clauses', 'disputed_by',
            'contributors', 'signatures', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


# Request payloads


class ContributorInputSerializer(serializers.Serializer):
    """One contributor as sent by the split sheet editor."""

    userId = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.all(), source='user', required=False, allow_null=True
    )
    legalName = serializers.CharField(source='legal_name', max_length=255)
    stageName = serializers.CharField(
        source='stage_name', max_length=255, required=False, allow_blank=True, allow_null=True
    )
    role = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    contributorType = serializers.ChoiceField(
        source='contributor_type', choices=Contributor.TYPE_CHOICES, required=False
    )
    percentage = serializers.DecimalField(max_digits=7, decimal_places=2, required=False, allow_null=True)
    proAffiliation = serializers.CharField(
        source='pro_affiliation', max_length=100, required=False, allow_blank=True, allow_null=True
    )
    ipiNumber = serializers.CharField(
        source='ipi_number', max_length=50, required=False, allow_blank=True, allow_null=True
    )
    proOrgId = serializers.PrimaryKeyRelatedField(
        queryset=ProOrg.objects.all(), source='pro_org', required=False, allow_null=True
    )
    publisher = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    publisherShare = serializers.DecimalField(
        source='publisher_share', max_digits=7, decimal_places=2, required=False, allow_null=True
    )
    publisherId = serializers.PrimaryKeyRelatedField(
        queryset=Publisher.objects.all(), source='publisher_entity', required=False, allow_null=True
    )
    labelId = serializers.PrimaryKeyRelatedField(
        queryset=Label.objects.all(), source='label', required=False, allow_null=True
    )
    contactEmail = serializers.EmailField(
        source='contact_email', required=False, allow_blank=True, allow_null=True
    )
    contactPhone = serializers.CharField(
        source='contact_phone', max_length=50, required=False, allow_blank=True, allow_null=True
    )
    address = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        data['contributor_type'] = data.get('contributor_type') or Contributor.TYPE_WRITER
        data['role'] = data.get('role') or 'Contributor'
        if data.get('percentage') is None:
            data['percentage'] = Decimal('0')
        for field in ('stage_name', 'pro_affiliation', 'ipi_number', 'publisher',
                      'contact_email', 'contact_phone', 'address'):
            if field in data and not data[field]:
                data[field] = None
        return data


class SplitSheetWriteSerializer(serializers.Serializer):
    """Payload for creating a sheet."""

    songId = serializers.PrimaryKeyRelatedField(
        queryset=Song.objects.all(), source='song', required=False, allow_null=True
    )
    finalTitle = serializers.CharField(source='final_title', max_length=255)
    workingTitle = serializers.CharField(
        source='working_title', max_length=255, required=False, allow_blank=True, allow_null=True
    )
    iswc = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    creationDate = serializers.DateField(source='creation_date', required=False, allow_null=True)
    agreementDate = serializers.DateField(source='agreement_date', required=False, allow_null=True)
    clauses = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(
        choices=[SplitSheet.STATUS_PENDING, SplitSheet.STATUS_SIGNED],
        required=False,
        default=SplitSheet.STATUS_PENDING
    )
    contributors = ContributorInputSerializer(many=True, allow_empty=False)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and isinstance(data.get('status'), str):
            data = data.copy()
            data['status'] = data['status'].upper()
        return super().to_internal_value(data)


class SplitSheetReplaceSerializer(serializers.Serializer):
    """Full replace through PUT. Song fields left out keep their value."""

    finalTitle = serializers.CharField(source='final_title', max_length=255, required=False)
    workingTitle = serializers.CharField(
        source='working_title', max_length=255, required=False, allow_blank=True, allow_null=True
    )
    iswc = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    creationDate = serializers.DateField(source='creation_date', required=False, allow_null=True)
    agreementDate = serializers.DateField(source='agreement_date', required=False, allow_null=True)
    clauses = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    version = serializers.IntegerField(required=False, min_value=1)
    contributors = ContributorInputSerializer(many=True, allow_empty=False)


class ContributorPatchSerializer(serializers.Serializer):
    """Fields a contributor may change on their own row."""

    percentage = serializers.DecimalField(max_digits=7, decimal_places=2, required=False)
    proAffiliation = serializers.CharField(
        source='pro_affiliation', max_length=100, required=False, allow_blank=True, allow_null=True
    )
    ipiNumber = serializers.CharField(
        source='ipi_number', max_length=50, required=False, allow_blank=True, allow_null=True
    )
    publisher = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    publisherShare = serializers.DecimalField(
        source='publisher_share', max_digits=7, decimal_places=2, required=False, allow_null=True
    )
    contactEmail = serializers.EmailField(
        source='contact_email', required=False, allow_blank=True, allow_null=True
    )
    contactPhone = serializers.CharField(
        source='contact_phone', max_length=50, required=False, allow_blank=True, allow_null=True
    )
    address = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    stageName = serializers.CharField(
        source='stage_name', max_length=255, required=False, allow_blank=True, allow_null=True
    )

    ALLOWED_FIELDS = [
        'percentage', 'proAffiliation', 'ipiNumber', 'publisher', 'publisherShare',
        'contactEmail', 'contactPhone', 'address', 'stageName',
    ]
