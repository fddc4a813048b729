"""
Client session and token bookkeeping

The access token, refresh token, expiry and user record are kept in local
storage, lightly obfuscated (base64 over URL-encoded text). A refresh is
due five minutes before the access token expires; an idle session times
out after fifteen minutes. All timestamps are epoch seconds.
"""
import base64
import binascii
import json
import logging
import threading
import time
from typing import Callable, Iterable, Optional
from urllib.parse import quote, unquote

import httpx

from config import (
    API_BASE_URL,
    AUTO_REFRESH_INTERVAL,
    REFRESH_THRESHOLD,
    REMEMBER_ME_DURATION,
    REQUEST_TIMEOUT,
    SESSION_TIMEOUT,
    SESSION_WARNING_TIME,
    STORAGE_KEYS,
)
from schemas import AuthUser, TokenData

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = STORAGE_KEYS["ACCESS_TOKEN"]
REFRESH_TOKEN_KEY = STORAGE_KEYS["REFRESH_TOKEN"]
TOKEN_EXPIRES_KEY = STORAGE_KEYS["TOKEN_EXPIRES"]
USER_DATA_KEY = STORAGE_KEYS["USER_DATA"]
REMEMBER_ME_KEY = STORAGE_KEYS["REMEMBER_ME"]
SESSION_TIMEOUT_KEY = STORAGE_KEYS["SESSION_TIMEOUT"]


def encode(data: str) -> str:
    return base64.b64encode(quote(data, safe="!*'()").encode("ascii")).decode("ascii")


def decode(encoded: str) -> str:
    """Reverse `encode`; anything that is not valid yields an empty string."""
    try:
        return unquote(base64.b64decode(encoded, validate=True).decode("ascii"), errors="strict")
    except (binascii.Error, ValueError):
        return ""


class AutoRefresh:
    """Background timer that keeps the access token fresh until stopped."""

    def __init__(self, manager: "TokenManager", interval: float):
        self.manager = manager
        self.interval = interval
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="token-auto-refresh", daemon=True)

    def start(self) -> "AutoRefresh":
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            if self.manager.is_authenticated():
                self.manager.auto_refresh_token()


class TokenManager:
    def __init__(
        self,
        storage,
        base_url: str = API_BASE_URL,
        http: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self.base_url = base_url.rstrip("/")
        self.clock = clock
        self._http = http
        self._owns_http = http is None

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(timeout=REQUEST_TIMEOUT)
        return self._http

    def close(self) -> None:
        if self._owns_http and self._http is not None:
            self._http.close()
            self._http = None

    # ---------- Storage ----------

    def set_tokens(self, token_data: TokenData) -> None:
        try:
            self.storage.set_item(ACCESS_TOKEN_KEY, encode(token_data.access_token))
            self.storage.set_item(REFRESH_TOKEN_KEY, encode(token_data.refresh_token))
            self.storage.set_item(TOKEN_EXPIRES_KEY, repr(float(token_data.expires_at)))
            user_json = json.dumps(token_data.user.model_dump(by_alias=True, mode="json"))
            self.storage.set_item(USER_DATA_KEY, encode(user_json))
            self.set_session_timeout()
        except OSError as e:
            logger.error("Failed to store tokens: %s", e)

    def set_tokens_from_response(self, data: dict) -> TokenData:
        """Store the `data` of an auth response (login, register or refresh)."""
        token_data = TokenData(
            access_token=data["accessToken"],
            refresh_token=data["refreshToken"],
            expires_at=self.clock() + float(data["expiresIn"]),
            user=AuthUser.model_validate(data["user"]),
        )
        self.set_tokens(token_data)
        return token_data

    def _get_secret(self, key: str) -> Optional[str]:
        encoded = self.storage.get_item(key)
        if not encoded:
            return None
        return decode(encoded) or None

    def _get_timestamp(self, key: str) -> Optional[float]:
        value = self.storage.get_item(key)
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            logger.warning("Ignoring malformed timestamp in %s", key)
            return None

    def get_access_token(self) -> Optional[str]:
        return self._get_secret(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self._get_secret(REFRESH_TOKEN_KEY)

    def get_user_data(self) -> Optional[AuthUser]:
        raw = self._get_secret(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return AuthUser.model_validate(json.loads(raw))
        except ValueError:
            return None

    def clear_tokens(self) -> None:
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRES_KEY, USER_DATA_KEY, SESSION_TIMEOUT_KEY):
            self.storage.remove_item(key)

    # ---------- Expiry ----------

    def get_token_expiration_time(self) -> Optional[float]:
        return self._get_timestamp(TOKEN_EXPIRES_KEY)

    def is_token_expired(self) -> bool:
        expires_at = self.get_token_expiration_time()
        if expires_at is None:
            return True
        return self.clock() >= expires_at

    def needs_refresh(self) -> bool:
        expires_at = self.get_token_expiration_time()
        if expires_at is None:
            return True
        return self.clock() >= expires_at - REFRESH_THRESHOLD

    def get_time_until_expiry(self) -> float:
        expires_at = self.get_token_expiration_time()
        if expires_at is None:
            return 0
        return max(0, expires_at - self.clock())

    def get_formatted_time_until_expiry(self) -> str:
        remaining = self.get_time_until_expiry()
        if remaining == 0:
            return "Expired"
        minutes, seconds = divmod(int(remaining), 60)
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"

    # ---------- Remember me ----------

    def set_remember_me(self, email: str, remember_me: bool) -> None:
        if not remember_me:
            self.storage.remove_item(REMEMBER_ME_KEY)
            return
        data = {
            "email": email,
            "rememberMe": True,
            "expiresAt": self.clock() + REMEMBER_ME_DURATION,
        }
        self.storage.set_item(REMEMBER_ME_KEY, encode(json.dumps(data)))

    def get_remember_me_data(self) -> Optional[dict]:
        raw = self._get_secret(REMEMBER_ME_KEY)
        if not raw:
            return None
        try:
            data = json.loads(raw)
            expires_at = float(data["expiresAt"])
        except (ValueError, KeyError, TypeError):
            return None
        if self.clock() > expires_at:
            self.storage.remove_item(REMEMBER_ME_KEY)
            return None
        return data

    # ---------- Session timeout ----------

    def set_session_timeout(self) -> None:
        self.storage.set_item(SESSION_TIMEOUT_KEY, repr(self.clock() + SESSION_TIMEOUT))

    def update_session_timeout(self) -> None:
        self.set_session_timeout()

    def is_session_expired(self) -> bool:
        timeout = self._get_timestamp(SESSION_TIMEOUT_KEY)
        if timeout is None:
            return True
        return self.clock() > timeout

    # ---------- Identity ----------

    def is_authenticated(self) -> bool:
        return (
            bool(self.get_access_token())
            and bool(self.get_refresh_token())
            and not self.is_token_expired()
            and not self.is_session_expired()
        )

    def has_role(self, role: str) -> bool:
        user = self.get_user_data()
        return user is not None and role in user.roles

    def has_any_role(self, roles: Iterable[str]) -> bool:
        user = self.get_user_data()
        if user is None:
            return False
        return any(role in user.roles for role in roles)

    # ---------- Refresh ----------

    def auto_refresh_token(self) -> bool:
        """Refresh the access token if it is close to expiry.

        Makes at most one network call. Any failure clears the stored
        tokens and returns False.
        """
        if not self.needs_refresh():
            return True
        return self.refresh()

    def refresh(self) -> bool:
        """Exchange the refresh token for a new access token, unconditionally."""
        refresh_token = self.get_refresh_token()
        if not refresh_token:
            return False

        try:
            response = self.http.post(f"{self.base_url}/auth/refresh", json={"refreshToken": refresh_token})
        except httpx.HTTPError as e:
            logger.error("Token refresh failed: %s", e)
            self.clear_tokens()
            return False

        if response.is_error:
            logger.warning("Token refresh rejected with status %s", response.status_code)
            self.clear_tokens()
            return False

        try:
            self.set_tokens_from_response(response.json()["data"])
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Malformed refresh response: %s", e)
            self.clear_tokens()
            return False
        return True

    def initialize(self) -> bool:
        """Call on start-up: drop a timed-out session, otherwise refresh if due."""
        if self.is_session_expired():
            self.clear_tokens()
            return False
        return self.auto_refresh_token()

    def start_auto_refresh(self, interval: float = AUTO_REFRESH_INTERVAL) -> AutoRefresh:
        return AutoRefresh(self, interval).start()

    def check_session_timeout(
        self,
        on_warning: Callable[[float], None],
        on_expired: Callable[[], None],
        warning_time: float = SESSION_WARNING_TIME,
    ) -> None:
        # an expired access token is reported; no token or an idle timeout is not
        if not self.get_access_token() or self.is_session_expired():
            return
        remaining = self.get_time_until_expiry()
        if remaining <= 0:
            on_expired()
        elif remaining <= warning_time:
            on_warning(remaining)
