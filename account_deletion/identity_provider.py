"""
Admin client for the identity provider (Supabase Auth).

Built explicitly from settings by the caller (the deletion pipeline, username
changes); there is no module-level client.
"""

import logging

import requests
from django.conf import settings


logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Raised when the identity provider rejects or fails a request."""


class SupabaseAdminClient:
    """
    Minimal Supabase Auth admin API client using the service-role key.
    """

    def __init__(self, base_url: str, service_role_key: str, timeout: int = 10):
        self.base_url = base_url.rstrip('/')
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'apikey': service_role_key,
            'Authorization': f'Bearer {service_role_key}',
        })

    @classmethod
    def from_settings(cls) -> 'SupabaseAdminClient':
        return cls(
            base_url=settings.SUPABASE_URL,
            service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            timeout=settings.SUPABASE_TIMEOUT,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.service_role_key)

    def _user_url(self, external_id: str) -> str:
        return f"{self.base_url}/auth/v1/admin/users/{external_id}"

    def update_user_metadata(self, external_id: str, metadata: dict) -> dict:
        """
        Merge keys into an identity-provider user's metadata.

        Returns:
            dict: updated user payload

        Raises:
            IdentityProviderError: on transport errors, unknown users or
                unexpected responses
        """
        if not self.is_configured:
            raise IdentityProviderError('Identity provider is not configured')

        try:
            response = self.session.put(
                self._user_url(external_id),
                json={'user_metadata': metadata},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise IdentityProviderError(f"Identity provider update failed: {str(e)}") from e

        if not response.ok:
            raise IdentityProviderError(
                f"Identity provider update returned {response.status_code}: {response.text[:200]}"
            )
        return response.json()

    def delete_user(self, external_id: str) -> None:
        """
        Delete an identity-provider user. A user that is already gone counts
        as deleted.

        Raises:
            IdentityProviderError: on transport errors or unexpected responses
        """
        if not self.is_configured:
            raise IdentityProviderError('Identity provider is not configured')

        try:
            response = self.session.delete(self._user_url(external_id), timeout=self.timeout)
        except requests.RequestException as e:
            raise IdentityProviderError(f"Identity provider delete failed: {str(e)}") from e

        if response.status_code == 404:
            logger.info(f"Identity provider user {external_id} already deleted")
            return
        if not response.ok:
            raise IdentityProviderError(
                f"Identity provider delete returned {response.status_code}: {response.text[:200]}"
            )
        logger.info(f"Deleted identity provider user {external_id}")
