import asyncio
import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from cardscan.core.errors import AuthError
from cardscan.core.models import AuthRequest, AuthResponse

logger = logging.getLogger(__name__)

AUTH_FILE = "data/auth.json"

KEY_USER_ID = "user_id"
KEY_AUTH_TOKEN = "auth_token"
KEY_DEVICE_ID = "device_id"


@dataclass
class AuthResult:
    ok: bool
    error: Optional[str] = None


class AuthManager:
    """
    Device identity and bearer token for the API.

    The device id is generated once and persisted next to the token in a
    small JSON file. Anonymous authentication trades the device id for a
    user id and token.
    """

    def __init__(self, base_url: str, auth_file: str = AUTH_FILE, timeout: float = 15):
        self.base_url = base_url.rstrip("/")
        self.auth_file = auth_file
        self.timeout = timeout
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.auth_file):
            return {}
        try:
            with open(self.auth_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except Exception as e:
            logger.error(f"Failed to read auth file {self.auth_file}: {e}")
            return {}

    def _save(self):
        directory = os.path.dirname(self.auth_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            with open(self.auth_file, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2)
        except Exception as e:
            logger.error(f"Failed to write auth file {self.auth_file}: {e}")

    def get_device_id(self) -> str:
        device_id = self._data.get(KEY_DEVICE_ID)
        if not device_id:
            device_id = str(uuid.uuid4())
            self._data[KEY_DEVICE_ID] = device_id
            self._save()
            logger.info("Generated new device id")
        return device_id

    def get_user_id(self) -> Optional[str]:
        return self._data.get(KEY_USER_ID)

    def get_auth_token(self) -> Optional[str]:
        return self._data.get(KEY_AUTH_TOKEN)

    def is_authenticated(self) -> bool:
        return self.get_auth_token() is not None and self.get_user_id() is not None

    def save_auth_data(self, user_id: str, token: str):
        self._data[KEY_USER_ID] = user_id
        self._data[KEY_AUTH_TOKEN] = token
        self._save()

    def clear_auth_data(self):
        self._data.pop(KEY_USER_ID, None)
        self._data.pop(KEY_AUTH_TOKEN, None)
        self._save()

    def _post_anonymous(self, device_id: str) -> AuthResponse:
        url = f"{self.base_url}/auth/anonymous"
        try:
            response = requests.post(url, json=AuthRequest(device_id=device_id).model_dump(), timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthError(f"Authentication request failed: {e}") from e

        if response.status_code != 200:
            raise AuthError(f"Authentication failed: {response.status_code}")

        try:
            return AuthResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthError(f"Malformed authentication response: {e}") from e

    async def authenticate(self) -> AuthResult:
        device_id = self.get_device_id()
        try:
            auth = await asyncio.to_thread(self._post_anonymous, device_id)
        except AuthError as e:
            logger.error(str(e))
            return AuthResult(ok=False, error=str(e))

        self.save_auth_data(auth.user_id, auth.token)
        logger.info(f"Authenticated as user {auth.user_id}")
        return AuthResult(ok=True)

    async def ensure_token(self) -> Optional[str]:
        """Returns the stored token, authenticating first only if there is none."""
        token = self.get_auth_token()
        if token:
            return token
        result = await self.authenticate()
        return self.get_auth_token() if result.ok else None
