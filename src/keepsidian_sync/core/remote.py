"""Async adapter exposing ``KeepClient`` as a note source and sink.

``KeepClient`` is blocking (``requests``); every call goes through
``run_sync()`` so the pipelines can await it.  Response bodies are
validated into the sync models here, so the pipelines never see raw
JSON.
"""

import logging

from pydantic import ValidationError

from ..errors import ParseError
from ..sync.models import NotePage, PushBatchResponse, PushCandidate
from .async_utils import run_sync
from .client import KeepClient

logger = logging.getLogger(__name__)


class KeepRemote:
    def __init__(self, client: KeepClient):
        self.client = client

    @property
    def server_url(self) -> str:
        return self.client.base_url

    async def fetch_page(self, offset: int, limit: int) -> NotePage:
        """
        Fetch and validate one page of notes.
        """
        data = await run_sync(self.client.fetch_notes, offset, limit)
        if data is None:
            return NotePage()
        try:
            return NotePage.model_validate(data)
        except ValidationError as exc:
            raise ParseError(
                f"Unexpected note page at offset {offset}: {exc}"
            ) from exc

    async def push_batch(
        self, candidates: list[PushCandidate]
    ) -> PushBatchResponse:
        """
        Push all candidates in one request and validate the results.
        """
        payload = [c.to_payload() for c in candidates]
        data = await run_sync(self.client.push_notes, payload)
        if data is None:
            return PushBatchResponse()
        try:
            return PushBatchResponse.model_validate(data)
        except ValidationError as exc:
            raise ParseError(f"Unexpected push response: {exc}") from exc

    async def fetch_bytes(self, url: str) -> bytes:
        return await run_sync(self.client.download, url)
