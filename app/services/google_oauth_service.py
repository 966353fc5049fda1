"""
Access tokens for the back-office Gmail account.

The triage batch never runs an interactive consent flow. A refresh token
issued once for the shared mailbox is traded at the Google token endpoint
for short-lived access tokens, which MailboxService caches until expiry.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import httpx

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

TOKEN_TIMEOUT = 10  # seconds
TOKEN_ATTEMPTS = 3
TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
EXPIRY_SKEW = timedelta(seconds=60)

_GRANT_ERRORS = {
    "invalid_grant": "Mailbox refresh token was revoked or has expired; re-issue GOOGLE_REFRESH_TOKEN",
    "invalid_client": "Google rejected the OAuth client credentials",
    "unauthorized_client": "OAuth client may not use the refresh_token grant",
}


class GoogleOAuthError(Exception):
    """Raised when no usable access token could be obtained."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class TokenResponse:
    """Access token plus the expiry Google reported for it."""

    def __init__(self, data: dict):
        self.access_token = data.get("access_token")
        self.refresh_token = data.get("refresh_token")
        self.token_type = data.get("token_type", "Bearer")
        self.expires_in = data.get("expires_in")
        self.scope = data.get("scope", "")
        self.expires_at = (
            datetime.now(UTC) + timedelta(seconds=int(self.expires_in))
            if self.expires_in
            else None
        )

    def is_valid(self) -> bool:
        return bool(self.access_token and self.token_type)

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once the token is within a minute of expiring."""
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at - EXPIRY_SKEW

    def has_gmail_modify_access(self) -> bool:
        # mark-as-read and labelling need gmail.modify or the full mail scope
        return "gmail.modify" in self.scope or "mail.google.com" in self.scope


class GoogleOAuthService:
    """
    Refresh-grant client for the Google token endpoint.

    429 and 5xx answers and network errors are retried with a doubling
    pause. Grant errors such as a revoked refresh token are final.
    """

    def __init__(self, client_id: str | None, client_secret: str | None):
        if not client_id:
            raise GoogleOAuthError("GOOGLE_CLIENT_ID not configured")
        if not client_secret:
            raise GoogleOAuthError("GOOGLE_CLIENT_SECRET not configured")
        self.client_id = client_id
        self.client_secret = client_secret

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """
        Trade the mailbox refresh token for a fresh access token.

        Raises:
            GoogleOAuthError: On a grant error, an unparseable answer or
                when the endpoint stays unreachable.
        """
        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        logger.info("Refreshing mailbox access token")

        try:
            response = await self._exchange(form)
        except httpx.RequestError as e:
            logger.error(
                "Token endpoint unreachable",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Token endpoint unreachable: {e}") from e

        token = self._parse_token(response)
        # refresh answers normally omit the refresh token itself
        token.refresh_token = token.refresh_token or refresh_token
        return token

    async def _exchange(self, form: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=TOKEN_TIMEOUT) as client:
            for attempt in range(1, TOKEN_ATTEMPTS + 1):
                pause = 2**attempt
                try:
                    response = await client.post(GOOGLE_TOKEN_URL, data=form)
                except httpx.RequestError as e:
                    if attempt == TOKEN_ATTEMPTS:
                        raise
                    logger.warning(
                        "Token request failed, retrying",
                        attempt=attempt,
                        pause=pause,
                        error=str(e),
                    )
                    await asyncio.sleep(pause)
                    continue

                if response.status_code not in TRANSIENT_STATUSES or attempt == TOKEN_ATTEMPTS:
                    return response
                logger.warning(
                    "Token endpoint busy, retrying",
                    status_code=response.status_code,
                    attempt=attempt,
                    pause=pause,
                )
                await asyncio.sleep(pause)
        raise GoogleOAuthError("Token exchange ran out of attempts")

    def _parse_token(self, response: httpx.Response) -> TokenResponse:
        try:
            body = response.json()
        except ValueError:
            logger.error(
                "Token endpoint returned non-JSON",
                status_code=response.status_code,
                body_preview=response.text[:200],
            )
            raise GoogleOAuthError(
                f"Token endpoint returned non-JSON (HTTP {response.status_code})"
            ) from None

        if not response.is_success:
            code = body.get("error", "unknown_error")
            logger.error(
                "Refresh grant rejected",
                status_code=response.status_code,
                error_code=code,
                description=body.get("error_description"),
            )
            raise GoogleOAuthError(
                _GRANT_ERRORS.get(code, f"Refresh grant rejected ({code})"),
                error_code=code,
                response_data=body,
            )

        token = TokenResponse(body)
        if not token.is_valid():
            raise GoogleOAuthError("Token endpoint answer carried no access token")
        if token.scope and not token.has_gmail_modify_access():
            logger.warning("Access token lacks gmail.modify", scope=token.scope)

        logger.info("Mailbox access token refreshed", expires_in=token.expires_in)
        return token
