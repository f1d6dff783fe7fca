import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import NetworkError, ParseError

logger = logging.getLogger(__name__)

SYNC_PATH = "/keep/sync/v2"
PUSH_PATH = "/keep/push"


class KeepClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.server_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Accessor for the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "X-User-Email": self.config.email,
                "Authorization": f"Bearer {self.config.token}",
            }
        )
        session.verify = not self.config.insecure
        return session

    def _request(
        self, method: str, url: str, payload: Any = None
    ) -> requests.Response:
        """
        Send one request and turn transport failures and non-2xx
        statuses into ``NetworkError``.
        """
        session = self._get_session()
        try:
            response = session.request(
                method,
                url,
                json=payload,
                timeout=(10, 60),
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc

        status = response.status_code
        if status < 200 or status >= 300:
            message = f"Server returned status {status}"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and (
                body.get("error") or body.get("message")
            ):
                message = body.get("error") or body.get("message")
            raise NetworkError(message, status)
        return response

    @staticmethod
    def _decode_json(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError("Failed to parse JSON response") from exc

    def fetch_notes(self, offset: int = 0, limit: int = 50) -> Any:
        """
        Fetch one page of notes starting at *offset*.
        """
        url = f"{self.base_url}{SYNC_PATH}?offset={offset}&limit={limit}"
        logger.debug("Fetching notes offset=%d limit=%d", offset, limit)
        return self._decode_json(self._request("GET", url))

    def push_notes(self, notes: list[dict]) -> Any:
        """
        Submit a batch of local notes for upload.
        """
        url = f"{self.base_url}{PUSH_PATH}"
        logger.debug("Pushing %d note(s)", len(notes))
        return self._decode_json(
            self._request("POST", url, payload={"notes": notes})
        )

    def download(self, url: str) -> bytes:
        """
        Download a binary attachment.

        Credentials are only sent to the note service itself; blob URLs
        on other hosts are fetched anonymously.
        """
        if url.startswith(self.base_url + "/"):
            return self._request("GET", url).content
        try:
            response = requests.get(
                url, timeout=(10, 60), verify=not self.config.insecure
            )
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc
        if not response.ok:
            raise NetworkError(
                f"Server returned status {response.status_code}",
                response.status_code,
            )
        return response.content

