"""Browser login against the DevArk backend and stored-token checks."""

import logging
import time
import webbrowser
from typing import Callable, Optional

from ..storage.tokens import TokenStorage
from .api_client import AuthSession, DevArkApiClient

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_TIMEOUT = 5 * 60.0
DEFAULT_POLL_INTERVAL = 2.0


class AuthService:
    def __init__(
        self,
        token_storage: TokenStorage,
        api_client: DevArkApiClient,
        open_browser: Callable[[str], bool] = webbrowser.open,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.token_storage = token_storage
        self.api_client = api_client
        self.open_browser = open_browser
        self.sleep = sleep
        self.clock = clock
        self.pending: Optional[AuthSession] = None

    def start_login(self) -> AuthSession:
        session = self.api_client.create_auth_session()
        self.pending = session
        logger.info(f"Opening browser for login: {session.auth_url}")
        try:
            self.open_browser(session.auth_url)
        except Exception as e:
            logger.warning(f"Could not open browser, visit {session.auth_url} manually: {e}")
        return session

    def wait_for_completion(
        self,
        token: Optional[str] = None,
        timeout: float = DEFAULT_LOGIN_TIMEOUT,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> bool:
        """Poll the completion endpoint until the browser flow finishes.

        The API token is taken from the completion response; when the
        backend does not include one, the event stream is read instead.
        """
        session_token = token or (self.pending.token if self.pending else None)
        if not session_token:
            return False

        deadline = self.clock() + timeout
        while self.clock() < deadline:
            completion = self.api_client.check_auth_completion(session_token)
            if completion.success:
                api_token = completion.token
                if api_token is None:
                    api_token = self.api_client.stream_auth_token(session_token, timeout=max(1.0, deadline - self.clock()))
                return self._finish(api_token)
            self.sleep(interval)
        logger.warning("Login timed out")
        return False

    def wait_for_stream(self, token: Optional[str] = None, timeout: float = DEFAULT_LOGIN_TIMEOUT) -> bool:
        session_token = token or (self.pending.token if self.pending else None)
        if not session_token:
            return False
        try:
            api_token = self.api_client.stream_auth_token(session_token, timeout=timeout)
        except Exception as e:
            logger.error(f"Login failed: {e}")
            return False
        return self._finish(api_token)

    def _finish(self, api_token: str) -> bool:
        self.token_storage.store_token(api_token)
        self.api_client.set_token(api_token)
        self.pending = None
        return self.verify()

    def get_token(self) -> Optional[str]:
        return self.token_storage.get_token()

    def verify(self) -> bool:
        if not self.token_storage.has_token():
            return False
        token = self.token_storage.get_token()
        if not token:
            return False
        self.api_client.set_token(token)
        return self.api_client.verify_token().valid

    def current_user(self) -> Optional[dict]:
        token = self.token_storage.get_token()
        if not token:
            return None
        self.api_client.set_token(token)
        result = self.api_client.verify_token()
        if not result.valid:
            return None
        return result.user or {"id": result.user_id}

    def logout(self) -> None:
        self.token_storage.clear_token()
        self.api_client.set_token(None)
