"""
Mailbox Service - the triage pipeline's view of the sales inbox.
Wraps the Gmail client with token handling, the unread search window and
label bookkeeping so the job only deals in InboundMessage objects.
"""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import Settings
from app.features.mail_triage.domain.models import InboundMessage
from app.infrastructure.observability.logging import get_logger
from app.services.google_gmail_service import GoogleGmailError, GoogleGmailService
from app.services.google_oauth_service import GoogleOAuthService, TokenResponse

logger = get_logger(__name__)

UNREAD_LABEL_ID = "UNREAD"


def build_search_query(target_address: str, since: date) -> str:
    """Gmail query for unread mail to the inbox received after `since`."""
    return f"to:{target_address} is:unread after:{since.strftime('%Y/%m/%d')}"


def search_since_date(timezone: str, lookback_days: int = 1, now: datetime | None = None) -> date:
    """Calendar date `lookback_days` before today in the mailbox's timezone."""
    now = now or datetime.now(UTC)
    local_now = now.astimezone(ZoneInfo(timezone))
    return (local_now - timedelta(days=lookback_days)).date()


class MailboxService:
    """Gmail-backed mailbox for a single, unattended account."""

    def __init__(
        self,
        gmail: GoogleGmailService,
        oauth: GoogleOAuthService,
        refresh_token: str,
        target_address: str,
        timezone: str = "Asia/Tokyo",
        lookback_days: int = 1,
    ):
        self.gmail = gmail
        self.oauth = oauth
        self.refresh_token = refresh_token
        self.target_address = target_address
        self.timezone = timezone
        self.lookback_days = lookback_days
        self._token: TokenResponse | None = None
        self._label_ids: dict[str, str] = {}

    async def _access_token(self) -> str:
        if self._token is None or self._token.is_expired():
            self._token = await self.oauth.refresh_access_token(self.refresh_token)
        return self._token.access_token

    async def fetch_unread(self, limit: int, now: datetime | None = None) -> list[InboundMessage]:
        """
        First message of each unread thread addressed to the inbox.

        Raises:
            GoogleGmailError: If the search itself fails. Individual threads
            that cannot be loaded are logged and skipped.
        """
        token = await self._access_token()
        since = search_since_date(self.timezone, self.lookback_days, now)
        query = build_search_query(self.target_address, since)

        thread_ids = await self.gmail.search_thread_ids(token, query, max_results=limit)

        messages: list[InboundMessage] = []
        for thread_id in thread_ids:
            try:
                thread = await self.gmail.get_thread(token, thread_id)
            except GoogleGmailError as e:
                logger.warning("Skipping unreadable thread", thread_id=thread_id, error=str(e))
                continue

            first = thread.get_first_message()
            if first is None or not first.id:
                continue
            messages.append(first.to_inbound_message())

        logger.info(
            "Fetched unread messages",
            query=query,
            thread_count=len(thread_ids),
            message_count=len(messages),
        )
        return messages

    async def get_message(self, message_id: str) -> InboundMessage:
        """Subject and body of one message (raw body retrieval)."""
        token = await self._access_token()
        message = await self.gmail.get_message(token, message_id)
        return message.to_inbound_message()

    async def mark_read(self, message: InboundMessage) -> None:
        token = await self._access_token()
        await self.gmail.modify_thread(
            token, self._thread_id(message), remove_label_ids=[UNREAD_LABEL_ID]
        )

    async def apply_label(self, message: InboundMessage, label_name: str) -> None:
        token = await self._access_token()
        label_id = await self._get_or_create_label(token, label_name)
        await self.gmail.modify_thread(token, self._thread_id(message), add_label_ids=[label_id])

    async def _get_or_create_label(self, token: str, label_name: str) -> str:
        if label_name in self._label_ids:
            return self._label_ids[label_name]

        for label in await self.gmail.get_labels(token):
            self._label_ids[label.name] = label.id

        if label_name not in self._label_ids:
            label = await self.gmail.create_label(token, label_name)
            self._label_ids[label_name] = label.id

        return self._label_ids[label_name]

    @staticmethod
    def _thread_id(message: InboundMessage) -> str:
        # Gmail always returns threadId; fall back to the message id for single-message threads
        return message.thread_id or message.id


def build_mailbox_service(settings: Settings) -> MailboxService:
    """Wire a MailboxService from settings."""
    return MailboxService(
        gmail=GoogleGmailService(),
        oauth=GoogleOAuthService(settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET),
        refresh_token=settings.GOOGLE_REFRESH_TOKEN or "",
        target_address=settings.TARGET_EMAIL_ADDRESS,
        timezone=settings.MAILBOX_TIMEZONE,
        lookback_days=settings.SEARCH_LOOKBACK_DAYS,
    )
