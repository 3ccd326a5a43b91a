"""Interfaces to the remote services used by profile step handlers."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from pydantic import BaseModel

from .models import MediaFile


class Receipt(BaseModel):
    """Ledger transaction receipt."""

    status: str
    topic_id: Optional[str] = None
    sequence_number: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "SUCCESS"


class MediaUploader(Protocol):
    """Permanent media storage."""

    async def upload(self, file: MediaFile) -> str:
        """Upload ``file`` and return its reference, e.g. ``ar://<id>``."""


class LedgerClient(Protocol):
    """Consensus ledger with topic based messaging.

    Both operations return ``None`` when the user declines the approval in
    their wallet.
    """

    async def create_topic(self, memo: str) -> Optional[str]:
        """Create a topic and return its id."""

    async def send_message(self, topic_id: str, payload: Any) -> Optional[Receipt]:
        """Submit ``payload`` to ``topic_id``."""
