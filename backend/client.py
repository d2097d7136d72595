from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests


@dataclass(frozen=True)
class ActiveFilters:
    allowlist: List[str]
    blacklist: List[str]
    session_on: bool


class FocusBackendClient:
    """Client for the remote account/session backend."""

    def __init__(self, base_url: str, auth_token: Optional[str] = None, timeout_seconds: float = 20.0):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            token = self.auth_token
            headers["Authorization"] = token if token.startswith("Bearer ") else f"Bearer {token}"
        return headers

    def post_session(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        r = requests.post(
            f"{self.base_url}/api/session",
            json=payload,
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        r.raise_for_status()
        return r.json() if r.content else {}

    def get_session(self, session_id: str) -> Dict[str, Any]:
        if not session_id:
            raise ValueError("session_id is required")
        r = requests.get(
            f"{self.base_url}/api/session/{session_id}",
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        r.raise_for_status()
        return r.json()

    def sessions_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        r = requests.get(
            f"{self.base_url}/api/session/user/{user_id}",
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        r.raise_for_status()
        return r.json()

    def active_filters(self) -> ActiveFilters:
        """
        Reads the allow/block lists of the user's active session.

        A 204 means no session is active; lists may sit on the session body
        itself or under its ``activity`` mapping.
        """
        r = requests.get(
            f"{self.base_url}/api/session/active",
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )
        if r.status_code == 204:
            return ActiveFilters(allowlist=[], blacklist=[], session_on=False)
        r.raise_for_status()
        body = r.json() if r.content else None
        if not isinstance(body, dict):
            return ActiveFilters(allowlist=[], blacklist=[], session_on=False)
        activity = body.get("activity") if isinstance(body.get("activity"), dict) else {}
        allowlist = activity.get("allowlist") or body.get("allowlist") or []
        blacklist = activity.get("blacklist") or body.get("blacklist") or []
        return ActiveFilters(allowlist=list(allowlist), blacklist=list(blacklist), session_on=True)
