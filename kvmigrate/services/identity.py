"""Identity providers: who is being migrated."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests

from ..loaders.postgrest_loader import build_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """The authenticated owner of the local data."""
    id: str
    email: Optional[str] = None


class IdentityProvider(ABC):
    """Source of the current identity; None means not authenticated."""

    @abstractmethod
    def get_current_identity(self) -> Optional[Identity]:
        pass


class StaticIdentityProvider(IdentityProvider):
    """Identity fixed at construction time."""

    def __init__(self, identity_id: Optional[str], email: Optional[str] = None):
        self._identity = Identity(identity_id, email) if identity_id else None

    def get_current_identity(self) -> Optional[Identity]:
        return self._identity


class PostgRESTAuthIdentityProvider(IdentityProvider):
    """
    Resolves the identity behind an access token via ``GET /auth/v1/user``.

    Any failure (missing token, rejected token, network error) yields None.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self._session = session or build_session(api_key, access_token)

    def get_current_identity(self) -> Optional[Identity]:
        if not self.access_token:
            logger.warning("No access token configured, cannot resolve identity")
            return None

        try:
            response = self._session.get(f"{self.base_url}/auth/v1/user", timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Could not reach auth endpoint: {e}")
            return None

        if not response.ok:
            logger.warning(f"Access token rejected: HTTP {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error("Auth endpoint returned a non-JSON body")
            return None

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            return None

        return Identity(id=str(user_id), email=data.get("email"))
