import json
import time

import httpx
import pytest

from token_manager import (
    ACCESS_TOKEN_KEY,
    REMEMBER_ME_KEY,
    SESSION_TIMEOUT_KEY,
    USER_DATA_KEY,
    TokenManager,
    decode,
    encode,
)

BASE_URL = "http://shop.example.com/api"


def refresh_payload(access="access-2", refresh="refresh-2", expires_in=3600):
    return {
        "success": True,
        "data": {
            "accessToken": access,
            "refreshToken": refresh,
            "expiresIn": expires_in,
            "user": {"id": "u1", "email": "jane@example.com", "roles": ["USER"]},
        },
    }


class RecordingTransport:
    def __init__(self, respond):
        self.respond = respond
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.respond(request)


@pytest.fixture
def make_manager(storage, clock):
    def factory(respond=None):
        transport = RecordingTransport(respond or (lambda request: httpx.Response(200, json=refresh_payload())))
        http = httpx.Client(transport=httpx.MockTransport(transport))
        return TokenManager(storage, base_url=BASE_URL, http=http, clock=clock), transport
    return factory


def test_obfuscation_round_trip():
    value = 'tök€n with spaces & "quotes"'
    encoded = encode(value)
    assert encoded != value
    assert decode(encoded) == value


def test_decode_garbage_returns_empty():
    assert decode("%%%not base64%%%") == ""


def test_set_tokens_stores_obfuscated_values(make_manager, storage, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    assert storage.get_item(ACCESS_TOKEN_KEY) != "access-1"
    assert manager.get_access_token() == "access-1"
    assert manager.get_refresh_token() == "refresh-1"
    assert manager.get_user_data().email == "jane@example.com"
    assert manager.get_token_expiration_time() == token_data.expires_at


def test_corrupt_user_data_is_ignored(make_manager, storage, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    storage.set_item(USER_DATA_KEY, "garbage")
    assert manager.get_user_data() is None
    assert manager.has_role("USER") is False


def test_authenticated_after_set_tokens(make_manager, token_data):
    manager, _ = make_manager()
    assert manager.is_authenticated() is False
    manager.set_tokens(token_data)
    assert manager.is_authenticated() is True


def test_session_times_out_after_fifteen_minutes(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    clock.advance(15 * 60)
    assert manager.is_session_expired() is False
    clock.advance(1)
    assert manager.is_session_expired() is True
    assert manager.is_authenticated() is False


def test_update_session_timeout_extends_session(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    clock.advance(10 * 60)
    manager.update_session_timeout()
    clock.advance(10 * 60)
    assert manager.is_authenticated() is True


def test_token_expiry(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    clock.advance(3599)
    assert manager.is_token_expired() is False
    clock.advance(1)
    assert manager.is_token_expired() is True


def test_needs_refresh_five_minutes_before_expiry(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    clock.advance(3600 - 301)
    assert manager.needs_refresh() is False
    clock.advance(1)
    assert manager.needs_refresh() is True


def test_missing_expiry_counts_as_expired(make_manager):
    manager, _ = make_manager()
    assert manager.is_token_expired() is True
    assert manager.needs_refresh() is True
    assert manager.get_time_until_expiry() == 0


def test_clear_tokens_keeps_remember_me(make_manager, storage, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    manager.set_remember_me("jane@example.com", True)
    manager.clear_tokens()
    assert manager.get_access_token() is None
    assert manager.get_refresh_token() is None
    assert manager.get_user_data() is None
    assert storage.get_item(SESSION_TIMEOUT_KEY) is None
    assert manager.get_remember_me_data()["email"] == "jane@example.com"


def test_remember_me_expires_after_thirty_days(make_manager, storage, clock):
    manager, _ = make_manager()
    manager.set_remember_me("jane@example.com", True)
    assert manager.get_remember_me_data()["rememberMe"] is True
    clock.advance(30 * 24 * 60 * 60 + 1)
    assert manager.get_remember_me_data() is None
    assert storage.get_item(REMEMBER_ME_KEY) is None


def test_remember_me_false_removes_record(make_manager):
    manager, _ = make_manager()
    manager.set_remember_me("jane@example.com", True)
    manager.set_remember_me("jane@example.com", False)
    assert manager.get_remember_me_data() is None


def test_roles(make_manager, token_data):
    manager, _ = make_manager()
    assert manager.has_any_role(["USER"]) is False
    manager.set_tokens(token_data)
    assert manager.has_role("ADMIN") is True
    assert manager.has_role("SELLER") is False
    assert manager.has_any_role(["SELLER", "USER"]) is True
    assert manager.has_any_role(["SELLER", "MODERATOR"]) is False


def test_formatted_time_until_expiry(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    clock.advance(3600 - 250)
    assert manager.get_formatted_time_until_expiry() == "4m 10s"
    clock.advance(250 - 42)
    assert manager.get_formatted_time_until_expiry() == "42s"
    clock.advance(100)
    assert manager.get_formatted_time_until_expiry() == "Expired"


def test_auto_refresh_skipped_when_not_due(make_manager, token_data):
    manager, transport = make_manager()
    manager.set_tokens(token_data)
    assert manager.auto_refresh_token() is True
    assert transport.requests == []


def test_auto_refresh_without_refresh_token(make_manager):
    manager, transport = make_manager()
    assert manager.auto_refresh_token() is False
    assert transport.requests == []


def test_auto_refresh_stores_new_tokens(make_manager, clock, token_data):
    manager, transport = make_manager()
    manager.set_tokens(token_data)
    clock.advance(3600 - 60)
    assert manager.auto_refresh_token() is True

    assert len(transport.requests) == 1
    request = transport.requests[0]
    assert request.url == f"{BASE_URL}/auth/refresh"
    assert json.loads(request.content) == {"refreshToken": "refresh-1"}
    assert manager.get_access_token() == "access-2"
    assert manager.get_refresh_token() == "refresh-2"
    assert manager.get_token_expiration_time() == clock.now + 3600


def test_auto_refresh_rejected_clears_tokens(make_manager, clock, token_data):
    manager, transport = make_manager(lambda request: httpx.Response(401, json={"message": "Invalid refresh token"}))
    manager.set_tokens(token_data)
    clock.advance(3600 - 60)
    assert manager.auto_refresh_token() is False
    assert len(transport.requests) == 1
    assert manager.get_access_token() is None
    assert manager.get_refresh_token() is None


def test_auto_refresh_network_error_clears_tokens(make_manager, clock, token_data):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    manager, _ = make_manager(unreachable)
    manager.set_tokens(token_data)
    clock.advance(3600 - 60)
    assert manager.auto_refresh_token() is False
    assert manager.get_access_token() is None


def test_auto_refresh_malformed_response_clears_tokens(make_manager, clock, token_data):
    manager, _ = make_manager(lambda request: httpx.Response(200, json={"success": True}))
    manager.set_tokens(token_data)
    clock.advance(3600 - 60)
    assert manager.auto_refresh_token() is False
    assert manager.get_refresh_token() is None


def test_initialize_clears_expired_session(make_manager, clock, token_data):
    manager, transport = make_manager()
    manager.set_tokens(token_data)
    clock.advance(16 * 60)
    assert manager.initialize() is False
    assert manager.get_access_token() is None
    assert transport.requests == []


def test_initialize_with_live_session(make_manager, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    assert manager.initialize() is True


def test_session_timeout_warning(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data.model_copy(update={"expires_at": clock.now + 90}))
    warnings, expired = [], []
    manager.check_session_timeout(warnings.append, lambda: expired.append(True))
    assert warnings == [90]
    assert expired == []


def test_session_timeout_no_warning_when_far_from_expiry(make_manager, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    warnings = []
    manager.check_session_timeout(warnings.append, lambda: None)
    assert warnings == []


def test_session_timeout_ignored_when_logged_out(make_manager):
    manager, _ = make_manager()
    calls = []
    manager.check_session_timeout(calls.append, lambda: calls.append("expired"))
    assert calls == []


def test_auto_refresh_loop_can_be_stopped(make_manager, clock, token_data):
    manager, transport = make_manager()
    manager.set_tokens(token_data.model_copy(update={"expires_at": clock.now + 120}))
    loop = manager.start_auto_refresh(interval=0.01)
    deadline = time.monotonic() + 2
    while not transport.requests and time.monotonic() < deadline:
        time.sleep(0.01)
    loop.stop(timeout=1)
    assert loop.running is False
    assert transport.requests
    assert manager.get_access_token() == "access-2"


def test_session_timeout_reports_expired_token(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data.model_copy(update={"expires_at": clock.now + 30}))
    warnings, expired = [], []
    clock.advance(31)
    manager.check_session_timeout(warnings.append, lambda: expired.append(True))
    assert expired == [True]
    assert warnings == []


def test_session_timeout_ignored_after_idle_timeout(make_manager, clock, token_data):
    manager, _ = make_manager()
    manager.set_tokens(token_data)
    clock.advance(16 * 60)
    calls = []
    manager.check_session_timeout(calls.append, lambda: calls.append("expired"))
    assert calls == []
