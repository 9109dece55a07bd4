"""
MailerLite API client.

Two calls are used by the application:

- ``GET /groups`` lists subscriber groups. It doubles as the connectivity
  check on the integrations page and fills the group picker in the editor.
- ``POST /subscribers`` creates or updates a subscriber and adds them to a
  group. It is called once per completed contact form.

Every failure (network error, non-2xx status, unreadable body) surfaces as
:class:`MailerLiteError`. Nothing is retried.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any

from django.conf import settings
import requests

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://connect.mailerlite.com/api"
DEFAULT_TIMEOUT = 10


class MailerLiteError(Exception):
    """Raised when a MailerLite call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Group:
    id: str
    name: str
    active_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "active_count": self.active_count}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Group":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            active_count=int(data.get("active_count") or 0),
        )


def token_fingerprint(token: str) -> str:
    """Stable, non-reversible marker for a token, safe to keep in a session."""
    return hashlib.sha256(token.strip().encode("utf-8")).hexdigest()


def _error_message(response: requests.Response) -> str:
    """Extract an error message from a non-2xx response.

    The body is parsed as JSON when possible, otherwise the raw text is used.
    """
    text = response.text or ""
    try:
        data = json.loads(text)
    except ValueError:
        data = {"message": text}
    if isinstance(data, dict):
        message = data.get("message") or ""
    else:
        message = ""
    return message or f"HTTP {response.status_code}"


class MailerLiteClient:
    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.token = token.strip()
        self.base_url = (
            base_url or getattr(settings, "MAILERLITE_API_URL", DEFAULT_API_URL)
        ).rstrip("/")
        self.timeout = timeout or getattr(settings, "MAILERLITE_TIMEOUT", DEFAULT_TIMEOUT)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"MailerLite {method} {path} failed: {e}")
            raise MailerLiteError(f"Could not reach MailerLite: {e}") from e

        if not response.ok:
            message = _error_message(response)
            logger.warning(
                f"MailerLite {method} {path} returned {response.status_code}: {message}"
            )
            raise MailerLiteError(
                f"MailerLite API error: {message}", status_code=response.status_code
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MailerLiteError("MailerLite returned an unreadable response") from e

    def list_groups(self) -> list[Group]:
        """
        Fetch the account's subscriber groups.

        Returns:
            Groups in the order MailerLite lists them

        Raises:
            MailerLiteError: If the token is rejected or the call fails
        """
        data = self._request("GET", "/groups")
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise MailerLiteError("Unexpected response format from MailerLite groups")
        groups = []
        for item in items:
            if not isinstance(item, dict) or "id" not in item:
                logger.warning(f"Skipping invalid MailerLite group item: {item}")
                continue
            groups.append(Group.from_dict(item))
        logger.info(f"Fetched {len(groups)} MailerLite groups")
        return groups

    def upsert_subscriber(self, email: str, name: str, group_id: str) -> dict | None:
        """Create or update a subscriber and add them to ``group_id``."""
        payload = {
            "email": email,
            "fields": {"name": name},
            "groups": [group_id],
        }
        data = self._request("POST", "/subscribers", payload)
        logger.info(f"Subscriber synced to MailerLite group {group_id}")
        return data


def check_connection(token: str) -> list[Group]:
    """Connectivity test used before a token may be saved."""
    if not token or not token.strip():
        raise MailerLiteError("A MailerLite API token is required")
    return MailerLiteClient(token).list_groups()
