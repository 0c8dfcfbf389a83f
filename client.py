"""Small HTTP client for the study rewards API."""
import requests

from logging_setup import get_logger
from settings import API_BASE_URL, API_TIMEOUT_SEC

log = get_logger("client")


class ApiError(Exception):
    def __init__(self, message, status_code=None, errors=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or {}


class StudyClient:
    def __init__(self, base_url=API_BASE_URL, timeout=API_TIMEOUT_SEC, http=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        # a Session keeps the login cookie between calls
        self.http = http or requests.Session()
        self.user = None

    def _request(self, method, path, payload=None):
        url = f"{self.base_url}/api{path}"
        try:
            response = self.http.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("%s %s failed: %s", method, path, e)
            raise ApiError(f"Could not reach server: {e}") from e

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("message") or body.get("error") or response.reason
            raise ApiError(message, response.status_code, body.get("errors"))

        if not response.content:
            return None
        return response.json()

    # ── Auth ──────────────────────────────────────────────────────────────

    def register(self, username, password):
        self.user = self._request("POST", "/register",
                                  {"username": username, "password": password})
        return self.user

    def login(self, username, password):
        self.user = self._request("POST", "/login",
                                  {"username": username, "password": password})
        return self.user

    def logout(self):
        self._request("POST", "/logout")
        self.user = None

    def me(self):
        return self._request("GET", "/user")

    # ── Ledger ────────────────────────────────────────────────────────────

    def get_stats(self, user_id):
        return self._request("GET", f"/stats/{user_id}")

    def patch_stats(self, user_id, **fields):
        return self._request("PATCH", f"/stats/{user_id}", fields)

    def list_sessions(self, user_id):
        return self._request("GET", f"/sessions/{user_id}")

    def create_session(self, user_id, duration, coins_earned, idempotency_key=None):
        payload = {"userId": user_id, "duration": duration, "coinsEarned": coins_earned}
        if idempotency_key:
            payload["idempotencyKey"] = idempotency_key
        return self._request("POST", "/sessions", payload)

    def update_streak(self):
        return self._request("POST", "/update-streak")

    def achievements(self, user_id):
        return self._request("GET", f"/achievements/{user_id}")

    # ── Breaks ────────────────────────────────────────────────────────────

    def list_breaks(self):
        return self._request("GET", "/breaks")

    def purchase_break(self, break_id):
        return self._request("POST", f"/breaks/{break_id}/purchase")

    def end_break(self):
        return self._request("POST", "/breaks/end")
