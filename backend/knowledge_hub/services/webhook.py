"""Client for the external document-processing webhook."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

from knowledge_hub.core.config import Settings
from knowledge_hub.core.errors import WebhookError
from knowledge_hub.core.logging import get_logger
from knowledge_hub.core.metrics import WEBHOOK_COUNT

logger = get_logger(__name__)


@dataclass(slots=True)
class ProcessingRequest:
    file_id: str
    file_url: str
    file_path: str
    file_type: str
    callback_url: str

    def to_payload(self) -> dict[str, str]:
        return {
            "file_id": self.file_id,
            "file_url": self.file_url,
            "file_path": self.file_path,
            "file_type": self.file_type,
            "callback_url": self.callback_url,
        }


def build_processing_request(settings: Settings, file_id: str, file_path: str, file_type: str) -> ProcessingRequest:
    return ProcessingRequest(
        file_id=file_id,
        file_url=settings.blob_url(file_path),
        file_path=file_path,
        file_type=file_type,
        callback_url=settings.callback_url,
    )


class ProcessingTrigger(Protocol):
    def trigger(self, request: ProcessingRequest) -> dict[str, Any]:
        ...


class WebhookClient:
    """POST processing requests to the configured webhook.

    The processor answers asynchronously through the callback URL, so the
    response body here is only an acknowledgement.
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    def trigger(self, request: ProcessingRequest) -> dict[str, Any]:
        url = self.settings.webhook_url
        if not url:
            WEBHOOK_COUNT.labels(outcome="unconfigured").inc()
            raise WebhookError("Document processing webhook URL not configured")
        headers = {"Content-Type": "application/json"}
        if self.settings.webhook_auth:
            headers["Authorization"] = self.settings.webhook_auth
        logger.info("Calling processing webhook for %s", request.file_id, extra={"ctx_file_id": request.file_id})
        try:
            resp = self.session.post(
                url,
                json=request.to_payload(),
                headers=headers,
                timeout=self.settings.webhook_timeout,
            )
        except requests.RequestException as exc:
            WEBHOOK_COUNT.labels(outcome="error").inc()
            raise WebhookError(f"Processing webhook unreachable: {exc}") from exc
        if not resp.ok:
            WEBHOOK_COUNT.labels(outcome="rejected").inc()
            raise WebhookError(f"Processing webhook failed ({resp.status_code}): {resp.text}")
        WEBHOOK_COUNT.labels(outcome="ok").inc()
        try:
            return resp.json()
        except ValueError:
            return {"raw": resp.text}


__all__ = ["ProcessingRequest", "ProcessingTrigger", "WebhookClient", "build_processing_request"]
