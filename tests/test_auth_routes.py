"""
tests/test_auth_routes.py -- Integration tests for login, signup, logout and the access gate.

These run through the real ASGI stack (TrustedHost, SlowAPI, logging and gate
middleware) with follow_redirects=False, so every assertion is on the redirect
Location and Set-Cookie headers the browser would see. Only the Yubico call
is mocked (app_env.verifier).

Coverage:
  - Login: success cookie attributes, each error code, not_recognized -> /signup
  - Unregistered keys never reach the OTP service
  - Signup: registers then logs in, already_registered, rejected OTP
  - Logout clears the cookie
  - Gate: unauthenticated -> /login, authenticated auth pages -> /,
    public assets without a session, stale cookies cleared
  - Error query strings are whitelisted before rendering
  - Login and signup floods get a 429 envelope with Retry-After
"""

from __future__ import annotations

from conftest import REGISTERED_ID, Harness, make_otp, session_headers

from api.limiter import AUTH_RATE_LIMIT, limiter
from auth.errors import ServiceUnavailable
from auth.sessions import SESSION_COOKIE, issue_session_token


def _set_cookies(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _session_cookie(resp) -> str:
    matches = [c for c in _set_cookies(resp) if c.startswith(f"{SESSION_COOKIE}=")]
    assert len(matches) == 1, _set_cookies(resp)
    return matches[0]


def _is_deletion(cookie: str) -> bool:
    return cookie.startswith(f"{SESSION_COOKIE}=") and "max-age=0" in cookie.lower()


class TestLogin:
    def test_success_sets_session_cookie_and_redirects_home(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp()})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"
        assert resp.headers["cache-control"] == "no-store"
        app_env.verifier.verify.assert_called_once_with(make_otp())

    def test_session_cookie_attributes(self, app_env: Harness) -> None:
        cookie = _session_cookie(app_env.client.post("/api/v1/auth", data={"otp": make_otp()})).lower()
        assert "httponly" in cookie
        assert "secure" in cookie
        assert "samesite=lax" in cookie
        assert "path=/" in cookie
        assert "max-age=3600" in cookie

    def test_issued_cookie_opens_dashboard(self, app_env: Harness) -> None:
        cookie = _session_cookie(app_env.client.post("/api/v1/auth", data={"otp": make_otp()}))
        token = cookie.split(";", 1)[0].split("=", 1)[1]
        resp = app_env.client.get("/", headers=session_headers(token=token))
        assert resp.status_code == 200
        assert REGISTERED_ID in resp.text

    def test_missing_otp(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth", data={})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login?error=missing_otp"
        app_env.verifier.verify.assert_not_called()

    def test_invalid_length(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp()[:-1]})
        assert resp.headers["location"] == "/login?error=invalid_length"
        app_env.verifier.verify.assert_not_called()

    def test_unregistered_key_goes_to_signup_without_remote_call(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp("vvvvvvvvvvvv")})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/signup?error=not_recognized"
        app_env.verifier.verify.assert_not_called()
        assert not any(c.startswith(f"{SESSION_COOKIE}=") for c in _set_cookies(resp))

    def test_upper_case_otp_logs_in(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp(REGISTERED_ID.upper())})
        assert resp.status_code == 303

    def test_rejected_otp(self, app_env: Harness) -> None:
        app_env.verifier.verify.return_value = False
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp()})
        assert resp.headers["location"] == "/login?error=invalid_otp"
        assert not any(c.startswith(f"{SESSION_COOKIE}=") for c in _set_cookies(resp))

    def test_service_unavailable(self, app_env: Harness) -> None:
        app_env.verifier.verify.side_effect = ServiceUnavailable("down")
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp()})
        assert resp.headers["location"] == "/login?error=service_unavailable"

    def test_missing_session_secret(self, app_env: Harness, monkeypatch) -> None:
        monkeypatch.setattr(app_env.settings, "session_secret", "")
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp()})
        assert resp.headers["location"] == "/login?error=server_config"
        app_env.verifier.verify.assert_not_called()


class TestSignup:
    def test_new_key_registered_and_logged_in(self, app_env: Harness) -> None:
        new_id = "ddddddddddee"
        resp = app_env.client.post("/api/v1/signup", data={"otp": make_otp(new_id)})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/"
        assert app_env.credentials.is_registered(new_id)
        _session_cookie(resp)

    def test_already_registered(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/signup", data={"otp": make_otp()})
        assert resp.headers["location"] == "/signup?error=already_registered"

    def test_rejected_otp_not_registered(self, app_env: Harness) -> None:
        app_env.verifier.verify.return_value = False
        resp = app_env.client.post("/api/v1/signup", data={"otp": make_otp("ffffffffffff")})
        assert resp.headers["location"] == "/signup?error=invalid_otp"
        assert not app_env.credentials.is_registered("ffffffffffff")

    def test_signup_page_reachable_without_session(self, app_env: Harness) -> None:
        resp = app_env.client.get("/signup")
        assert resp.status_code == 200
        assert 'action="/api/v1/signup"' in resp.text


class TestLogout:
    def test_logout_clears_cookie(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth/logout", headers=session_headers())
        assert resp.status_code == 303
        assert resp.headers["location"] == "/login"
        assert any(_is_deletion(c) for c in _set_cookies(resp))


class TestAccessGate:
    def test_unauthenticated_dashboard_redirects_to_login(self, app_env: Harness) -> None:
        resp = app_env.client.get("/")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"

    def test_unauthenticated_api_redirects_to_login(self, app_env: Harness) -> None:
        resp = app_env.client.get("/api/v1/layout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"

    def test_authenticated_login_page_redirects_home(self, app_env: Harness) -> None:
        resp = app_env.client.get("/login", headers=session_headers())
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_authenticated_login_post_redirects_home_without_remote_call(self, app_env: Harness) -> None:
        resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp()}, headers=session_headers())
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        app_env.verifier.verify.assert_not_called()

    def test_public_assets_without_session(self, app_env: Harness) -> None:
        for path in ("/app.js", "/style.css"):
            resp = app_env.client.get(path)
            assert resp.status_code == 200, path
        assert app_env.client.get("/favicon.ico").status_code == 204

    def test_tampered_cookie_redirects_and_clears(self, app_env: Harness) -> None:
        token = issue_session_token(app_env.settings.session_secret, REGISTERED_ID)
        resp = app_env.client.get("/", headers=session_headers(token=token + "x"))
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"
        assert any(_is_deletion(c) for c in _set_cookies(resp))

    def test_wrong_secret_rejected(self, app_env: Harness) -> None:
        resp = app_env.client.get("/", headers=session_headers(secret="x" * 40))
        assert resp.headers["location"] == "/login"

    def test_removed_credential_loses_access(self, app_env: Harness) -> None:
        key = "gggggggggggg"
        app_env.credentials.register(key)
        headers = session_headers(key)
        assert app_env.client.get("/", headers=headers).status_code == 200
        app_env.credentials.remove(key)
        resp = app_env.client.get("/", headers=headers)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/login"

    def test_expired_token_redirects(self, app_env: Harness) -> None:
        token = issue_session_token(app_env.settings.session_secret, REGISTERED_ID, now=1_000_000)
        resp = app_env.client.get("/", headers=session_headers(token=token))
        assert resp.headers["location"] == "/login"

    def test_untrusted_host_rejected(self, app_env: Harness) -> None:
        resp = app_env.client.get("/login", headers={"Host": "evil.example.com"})
        assert resp.status_code == 400


class TestErrorMessages:
    def test_known_code_rendered(self, app_env: Harness) -> None:
        resp = app_env.client.get("/login?error=invalid_otp")
        assert "Invalid OTP." in resp.text

    def test_not_recognized_on_signup(self, app_env: Harness) -> None:
        resp = app_env.client.get("/signup?error=not_recognized")
        assert "YubiKey not recognized" in resp.text

    def test_unknown_code_not_reflected(self, app_env: Harness) -> None:
        resp = app_env.client.get("/login?error=<script>alert(1)</script>")
        assert resp.status_code == 200
        assert "<script>alert(1)</script>" not in resp.text
        assert 'role="alert"' not in resp.text


class TestRateLimit:
    """Login and signup allow AUTH_RATE_LIMIT requests per client per minute.

    conftest disables the shared limiter for every other test, so each test
    here turns it on with a clean window and switches it back off afterwards.
    """

    def _flood(self, app_env: Harness, path: str, count: int) -> list:
        limiter.enabled = True
        limiter.reset()
        try:
            return [app_env.client.post(path, data={"otp": make_otp("vvvvvvvvvvvv")}) for _ in range(count)]
        finally:
            limiter.enabled = False
            limiter.reset()

    def test_login_flood_gets_429(self, app_env: Harness) -> None:
        allowed = int(AUTH_RATE_LIMIT.split("/")[0])
        responses = self._flood(app_env, "/api/v1/auth", allowed + 1)
        assert [r.status_code for r in responses[:allowed]] == [302] * allowed
        resp = responses[-1]
        assert resp.status_code == 429
        assert resp.json()["error"]["code"] == "rate_limited"
        assert 1 <= int(resp.headers["retry-after"]) <= 60
        app_env.verifier.verify.assert_not_called()

    def test_signup_flood_gets_429(self, app_env: Harness) -> None:
        app_env.verifier.verify.return_value = False
        allowed = int(AUTH_RATE_LIMIT.split("/")[0])
        responses = self._flood(app_env, "/api/v1/signup", allowed + 1)
        assert not app_env.credentials.is_registered("vvvvvvvvvvvv")
        assert responses[-1].status_code == 429
        assert responses[-1].json()["error"]["code"] == "rate_limited"
        assert "retry-after" in responses[-1].headers

    def test_limit_off_by_default_in_tests(self, app_env: Harness) -> None:
        allowed = int(AUTH_RATE_LIMIT.split("/")[0])
        for _ in range(allowed + 1):
            resp = app_env.client.post("/api/v1/auth", data={"otp": make_otp("vvvvvvvvvvvv")})
            assert resp.status_code == 302
