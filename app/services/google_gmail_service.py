"""
Gmail REST client used by the mailbox adapter.

Covers the handful of calls the triage run needs: thread search, thread and
message reads, label listing/creation and thread label edits. Payload
decoding lives in gmail_domain.py.
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from app.infrastructure.observability.logging import get_logger
from app.models.domain.gmail_domain import GmailLabel, GmailMessage, GmailThread

logger = get_logger(__name__)

GMAIL_USER_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

REQUEST_TIMEOUT = 30  # seconds
PAGE_SIZE_LIMIT = 500  # threads.list maxResults cap

_STATUS_HINTS = {
    400: "Gmail rejected the request",
    401: "Gmail access token rejected",
    403: "Mailbox access denied; check the granted scopes",
    404: "Gmail resource not found",
    429: "Gmail quota exceeded",
}


class GoogleGmailError(Exception):
    """Gmail call failed; status_code is set when Gmail answered."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleGmailService:
    """
    Thin synchronous-transport client behind an async interface.

    Transient statuses (429, 5xx) are retried by the session adapter with
    exponential backoff before a GoogleGmailError is raised.
    """

    def __init__(self):
        self._session = requests.Session()
        self._session.mount(
            "https://",
            HTTPAdapter(
                max_retries=Retry(
                    total=3,
                    backoff_factor=2,
                    status_forcelist=[429, 500, 502, 503, 504],
                    allowed_methods=["GET", "POST"],
                )
            ),
        )

    def _call(
        self,
        method: str,
        path: str,
        access_token: str,
        operation: str,
        params: dict | None = None,
        body: dict | None = None,
    ) -> dict:
        try:
            response = self._session.request(
                method,
                f"{GMAIL_USER_URL}/{path}",
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                params=params,
                json=body,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error("Gmail request failed", operation=operation, error=str(e))
            raise GoogleGmailError(f"Gmail {operation} failed: {e}") from e

        return self._decode(response, operation)

    def _decode(self, response: requests.Response, operation: str) -> dict:
        try:
            data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                "Gmail answered with non-JSON",
                operation=operation,
                status_code=response.status_code,
                body_preview=(response.text or "")[:200],
            )
            raise GoogleGmailError(
                f"Gmail {operation} returned non-JSON (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        if response.ok:
            return data

        error = data.get("error", {}) if isinstance(data, dict) else {}
        detail = error.get("message", "no detail")
        logger.error(
            "Gmail call rejected",
            operation=operation,
            status_code=response.status_code,
            detail=detail,
        )
        hint = _STATUS_HINTS.get(response.status_code, "Gmail call failed")
        raise GoogleGmailError(
            f"{hint}: {detail}",
            error_code=str(error.get("code", response.status_code)),
            status_code=response.status_code,
            response_data=data,
        )

    async def search_thread_ids(
        self, access_token: str, query: str, max_results: int = 100
    ) -> list[str]:
        """
        Thread ids matching a Gmail query, newest first.

        Follows nextPageToken until max_results ids are collected or the
        listing ends.
        """
        thread_ids: list[str] = []
        page_token = None
        logger.info("Searching Gmail threads", query=query, max_results=max_results)

        while len(thread_ids) < max_results:
            params = {"q": query, "maxResults": min(max_results - len(thread_ids), PAGE_SIZE_LIMIT)}
            if page_token:
                params["pageToken"] = page_token
            page = self._call("GET", "threads", access_token, "search_threads", params=params)
            thread_ids.extend(thread["id"] for thread in page.get("threads", []))
            page_token = page.get("nextPageToken")
            if not page_token:
                break

        logger.info("Gmail thread search done", thread_count=len(thread_ids))
        return thread_ids[:max_results]

    async def get_thread(
        self, access_token: str, thread_id: str, format: str = "full"
    ) -> GmailThread:
        data = self._call(
            "GET", f"threads/{thread_id}", access_token, "get_thread", params={"format": format}
        )
        return GmailThread(data)

    async def get_message(
        self, access_token: str, message_id: str, format: str = "full"
    ) -> GmailMessage:
        data = self._call(
            "GET", f"messages/{message_id}", access_token, "get_message", params={"format": format}
        )
        return GmailMessage(data)

    async def modify_thread(
        self,
        access_token: str,
        thread_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> None:
        """Add or remove labels on every message of a thread."""
        change = {}
        if add_label_ids:
            change["addLabelIds"] = add_label_ids
        if remove_label_ids:
            change["removeLabelIds"] = remove_label_ids

        logger.info(
            "Updating thread labels",
            thread_id=thread_id,
            add=add_label_ids,
            remove=remove_label_ids,
        )
        self._call("POST", f"threads/{thread_id}/modify", access_token, "modify_thread", body=change)

    async def get_labels(self, access_token: str) -> list[GmailLabel]:
        data = self._call("GET", "labels", access_token, "get_labels")
        return [GmailLabel(item) for item in data.get("labels", [])]

    async def create_label(self, access_token: str, name: str) -> GmailLabel:
        """Create a user label visible in both the label and message lists."""
        data = self._call(
            "POST",
            "labels",
            access_token,
            "create_label",
            body={"name": name, "labelListVisibility": "labelShow", "messageListVisibility": "show"},
        )
        logger.info("Gmail label created", label_name=name, label_id=data.get("id"))
        return GmailLabel(data)
