import logging
import secrets
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from account_deletion.identity_provider import IdentityProviderError, SupabaseAdminClient
from .models import InviteCode, ProOrg, Publisher, UserProfile
from .permissions import IsAdministrator, IsActiveAccount, is_admin_user
from .serializers import (
    ArtistSerializer,
    InviteCodeSerializer,
    GenerateInviteSerializer,
    ProOrgSerializer,
    PublisherSerializer,
    RedeemInviteSerializer,
    UserIdSerializer,
    UsernameChangeSerializer,
)

logger = logging.getLogger(__name__)

INVITE_TTL_DAYS = 30
SEARCH_LIMIT = 20


def generate_invite_code(role):
    """Uppercase code of the form LABEL-3F9A1C."""
    return f"{role.upper()}-{secrets.token_hex(3).upper()}"


class InviteCodeViewSet(viewsets.GenericViewSet):
    """
    Invite codes for role upgrades.

    Provides:
    - list: unused, unexpired invites (admin)
    - generate: create a new invite for LABEL or ADMIN (admin)
    - redeem: exchange a code for the role it grants (any account)
    - destroy: delete an invite you created, reverting its user if used (admin)
    """
    permission_classes = [IsAuthenticated, IsActiveAccount, IsAdministrator]
    serializer_class = InviteCodeSerializer
    queryset = InviteCode.objects.all()

    def get_permissions(self):
        if self.action == 'redeem':
            return [IsAuthenticated(), IsActiveAccount()]
        return super().get_permissions()

    def list(self, request):
        now = timezone.now()
        invites = InviteCode.objects.filter(
            used_at__isnull=True
        ).filter(
            Q(expires_at__isnull=True) | Q(expires_at__gt=now)
        ).select_related('created_by')
        return Response({'invites': InviteCodeSerializer(invites, many=True).data})

    @action(detail=False, methods=['post'])
    def generate(self, request):
        serializer = GenerateInviteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': 'Invalid role'}, status=status.HTTP_400_BAD_REQUEST)
        role = serializer.validated_data['role']

        code = generate_invite_code(role)
        while InviteCode.objects.filter(code=code).exists():
            code = generate_invite_code(role)

        invite = InviteCode.objects.create(
            code=code,
            role=role,
            created_by=request.user,
            expires_at=timezone.now() + timedelta(days=INVITE_TTL_DAYS),
        )
        logger.info(f"Invite {invite.code} generated by user {request.user.id}")
        return Response(
            {'invite': InviteCodeSerializer(invite).data},
            status=status.HTTP_201_CREATED
        )

    @action(detail=False, methods=['post'])
    def redeem(self, request):
        serializer = RedeemInviteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data['code']
        requested_role = serializer.validated_data['requestedRole']

        with transaction.atomic():
            invite = InviteCode.objects.select_for_update().filter(code=code).first()
            if not invite or not invite.is_redeemable_for(requested_role):
                return Response(
                    {'error': 'Invalid or expired invite code'},
                    status=status.HTTP_400_BAD_REQUEST
                )

            profile = request.user.profile
            profile.role = requested_role
            profile.save(update_fields=['role', 'updated_at'])

            invite.used_by = request.user
            invite.used_at = timezone.now()
            invite.save(update_fields=['used_by', 'used_at'])

        logger.info(f"User {request.user.id} redeemed invite {code} for role {requested_role}")
        return Response({'success': True, 'role': requested_role})

    def destroy(self, request, pk=None):
        invite = InviteCode.objects.filter(pk=pk).first()
        if not invite:
            return Response({'error': 'Invite not found'}, status=status.HTTP_404_NOT_FOUND)
        if invite.created_by_id != request.user.id:
            return Response(
                {'error': 'You can only delete invites you created'},
                status=status.HTTP_403_FORBIDDEN
            )

        if invite.used_by_id:
            reverted_user = invite.used_by_id
            with transaction.atomic():
                UserProfile.objects.filter(user_id=reverted_user).update(
                    role=UserProfile.ROLE_ARTIST,
                    updated_at=timezone.now()
                )
                invite.delete()
            logger.info(f"Invite {pk} deleted; user {reverted_user} reverted to ARTIST")
            return Response({'success': True, 'wasUsed': True, 'revertedUser': reverted_user})

        invite.delete()
        return Response({'success': True, 'wasUsed': False})


def first_error(serializer):
    """First validation message of a serializer, for the {'error': ...} envelope."""
    for messages in serializer.errors.values():
        if messages:
            return str(messages[0])
    return 'Invalid payload'


def search_term(request):
    return (request.query_params.get('q') or '').strip()


class PublisherViewSet(viewsets.GenericViewSet):
    """
    Publisher directory for linking contributors.

    Provides:
    - search: case-insensitive name match, 20 results at most
    """
    permission_classes = [IsAuthenticated, IsActiveAccount]
    serializer_class = PublisherSerializer
    queryset = Publisher.objects.all()

    @action(detail=False, methods=['get'])
    def search(self, request):
        q = search_term(request)
        if not q:
            return Response({'publishers': []})
        publishers = self.get_queryset().filter(name__icontains=q)[:SEARCH_LIMIT]
        return Response({'publishers': PublisherSerializer(publishers, many=True).data})


class ProOrgViewSet(viewsets.GenericViewSet):
    """
    Performance-rights organizations.

    Provides:
    - list: every organization, by name
    - search: case-insensitive name match, 20 results at most
    """
    permission_classes = [IsAuthenticated, IsActiveAccount]
    serializer_class = ProOrgSerializer
    queryset = ProOrg.objects.all()

    def list(self, request):
        return Response({'proOrgs': ProOrgSerializer(self.get_queryset(), many=True).data})

    @action(detail=False, methods=['get'])
    def search(self, request):
        q = search_term(request)
        if not q:
            return Response({'proOrgs': []})
        orgs = self.get_queryset().filter(name__icontains=q)[:SEARCH_LIMIT]
        return Response({'proOrgs': ProOrgSerializer(orgs, many=True).data})


class LabelViewSet(viewsets.GenericViewSet):
    """
    Artist management for label accounts.

    Provides:
    - assign: link an artist to the requester's label (label accounts, admins)
    - my_artists: every profile on the requester's label
    - search_artists: find profiles by name, 20 results at most
    """
    permission_classes = [IsAuthenticated, IsActiveAccount]
    serializer_class = ArtistSerializer

    def get_queryset(self):
        return UserProfile.objects.filter(
            deleted_at__isnull=True
        ).select_related('user').order_by('username', 'user__username')

    @action(detail=False, methods=['post'])
    def assign(self, request):
        serializer = UserIdSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': first_error(serializer)}, status=status.HTTP_400_BAD_REQUEST)

        profile = request.user.profile
        if profile.role != UserProfile.ROLE_LABEL and not is_admin_user(request.user):
            return Response(
                {'error': 'Only label accounts can assign artists'},
                status=status.HTTP_403_FORBIDDEN
            )
        if not profile.label_id:
            return Response({'error': 'Current user has no label'}, status=status.HTTP_400_BAD_REQUEST)

        artist = self.get_queryset().filter(user_id=serializer.validated_data['userId']).first()
        if artist is None:
            return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)

        artist.label_id = profile.label_id
        artist.save(update_fields=['label', 'updated_at'])
        logger.info(f"User {artist.user_id} assigned to label {profile.label_id} by user {request.user.id}")
        return Response({'success': True, 'profile': ArtistSerializer(artist).data})

    @action(detail=False, methods=['get'], url_path='my-artists')
    def my_artists(self, request):
        label_id = request.user.profile.label_id
        if not label_id:
            return Response({'artists': []})
        artists = self.get_queryset().filter(label_id=label_id).exclude(user=request.user)
        return Response({'artists': ArtistSerializer(artists, many=True).data})

    @action(detail=False, methods=['get'], url_path='search-artists')
    def search_artists(self, request):
        q = search_term(request)
        if not q:
            return Response({'artists': []})
        artists = self.get_queryset().filter(
            Q(username__icontains=q)
            | Q(user__username__icontains=q)
            | Q(user__first_name__icontains=q)
            | Q(user__last_name__icontains=q)
        )[:SEARCH_LIMIT]
        return Response({'artists': ArtistSerializer(artists, many=True).data})


class ProfileViewSet(viewsets.GenericViewSet):
    """
    Profile lookups and edits addressed by user id.

    Provides:
    - username: change a profile's public handle (owner or admin)
    - get_role: role of a profile, ARTIST when it has none (owner or admin)
    """
    permission_classes = [IsAuthenticated, IsActiveAccount]
    serializer_class = UsernameChangeSerializer
    queryset = UserProfile.objects.select_related('user')

    def _check_owner(self, request, user_id):
        return user_id == request.user.id or is_admin_user(request.user)

    @action(detail=False, methods=['post'])
    def username(self, request):
        serializer = UsernameChangeSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': first_error(serializer)}, status=status.HTTP_400_BAD_REQUEST)
        user_id = serializer.validated_data['userId']
        new_username = serializer.validated_data['newUsername']

        if not self._check_owner(request, user_id):
            return Response({'error': 'Forbidden'}, status=status.HTTP_403_FORBIDDEN)

        profile = self.get_queryset().filter(user_id=user_id).first()
        if profile is None:
            return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)
        if UserProfile.objects.filter(username=new_username).exclude(pk=profile.pk).exists():
            return Response({'error': 'Username is already taken'}, status=status.HTTP_409_CONFLICT)

        try:
            with transaction.atomic():
                profile.username = new_username
                profile.save(update_fields=['username', 'updated_at'])
        except IntegrityError:
            return Response({'error': 'Username is already taken'}, status=status.HTTP_409_CONFLICT)

        sync_username(profile)
        logger.info(f"User {user_id} changed username to {new_username}")
        return Response({
            'message': 'Username updated successfully',
            'user': {
                'id': profile.user_id,
                'username': profile.username,
                'email': profile.user.email,
            }
        })

    @action(detail=False, methods=['post'], url_path='get-role')
    def get_role(self, request):
        serializer = UserIdSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'error': first_error(serializer)}, status=status.HTTP_400_BAD_REQUEST)
        user_id = serializer.validated_data['userId']

        if not self._check_owner(request, user_id):
            return Response({'error': 'Forbidden'}, status=status.HTTP_403_FORBIDDEN)

        role = UserProfile.objects.filter(user_id=user_id).values_list('role', flat=True).first()
        return Response({'role': role or UserProfile.ROLE_ARTIST})


def sync_username(profile):
    """
    Mirror a username change into the identity provider's user metadata.
    Best effort: the local username is authoritative.
    """
    if not profile.external_auth_id:
        return
    client = SupabaseAdminClient.from_settings()
    if not client.is_configured:
        return
    try:
        client.update_user_metadata(profile.external_auth_id, {'username': profile.username})
    except IdentityProviderError as e:
        logger.warning(f"Identity provider username sync failed for user {profile.user_id}: {str(e)}")
