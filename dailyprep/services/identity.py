import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from dailyprep.core.config import settings

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"


@dataclass(frozen=True)
class DisplayIdentity:
    email: str
    name: str


def anonymous() -> DisplayIdentity:
    return DisplayIdentity(email=ANONYMOUS, name=ANONYMOUS)


class IdentityDirectory:
    """Resolves opaque user ids to display identities via the identity service.

    Without a configured service URL every user resolves to "Anonymous".
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = client or httpx.Client(timeout=timeout, headers=headers)

    def resolve(self, user_id: str) -> DisplayIdentity:
        if not self.base_url:
            return anonymous()
        try:
            resp = self.client.get(f"{self.base_url}/users/{user_id}")
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Identity lookup failed for {user_id}: {e}")
            return anonymous()
        email = body.get("email") if isinstance(body, dict) else None
        if not isinstance(email, str) or not email:
            return anonymous()
        return DisplayIdentity(email=email, name=email.split("@")[0])

    def close(self) -> None:
        self.client.close()


def get_identity_directory():
    token = settings.IDENTITY_SERVICE_TOKEN.get_secret_value() if settings.IDENTITY_SERVICE_TOKEN else None
    directory = IdentityDirectory(settings.IDENTITY_SERVICE_URL, token, settings.IDENTITY_SERVICE_TIMEOUT)
    try:
        yield directory
    finally:
        directory.close()
