import base64
from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.models.domain.gmail_domain import GmailLabel, GmailThread
from app.services.google_gmail_service import GoogleGmailError
from app.services.google_oauth_service import TokenResponse
from app.services.mailbox_service import MailboxService, build_search_query, search_since_date


def _thread(thread_id: str, message_id: str, subject: str) -> GmailThread:
    body = base64.urlsafe_b64encode("本文".encode()).decode().rstrip("=")
    return GmailThread(
        {
            "id": thread_id,
            "messages": [
                {
                    "id": message_id,
                    "threadId": thread_id,
                    "labelIds": ["UNREAD"],
                    "internalDate": "1740994200000",
                    "payload": {
                        "mimeType": "text/plain",
                        "headers": [
                            {"name": "Subject", "value": subject},
                            {"name": "From", "value": "sales@partner.example.jp"},
                        ],
                        "body": {"data": body},
                    },
                }
            ],
        }
    )


@pytest.fixture
def gmail():
    client = MagicMock()
    client.search_thread_ids = AsyncMock(return_value=["t-1", "t-2"])
    client.get_thread = AsyncMock(
        side_effect=lambda token, thread_id: _thread(thread_id, f"m-{thread_id}", f"件名 {thread_id}")
    )
    client.modify_thread = AsyncMock()
    client.get_labels = AsyncMock(return_value=[GmailLabel({"id": "Label_1", "name": "INBOX/案件"})])
    client.create_label = AsyncMock(return_value=GmailLabel({"id": "Label_2", "name": "INBOX/人材"}))
    return client


@pytest.fixture
def oauth():
    client = MagicMock()
    client.refresh_access_token = AsyncMock(
        return_value=TokenResponse({"access_token": "access-1", "expires_in": 3600})
    )
    return client


@pytest.fixture
def mailbox(gmail, oauth) -> MailboxService:
    return MailboxService(
        gmail=gmail,
        oauth=oauth,
        refresh_token="refresh-1",
        target_address="sales@ses.example.jp",
        timezone="Asia/Tokyo",
    )


def test_search_window_uses_mailbox_timezone():
    # 01:00 UTC on the 3rd is already 10:00 on the 3rd in Tokyo
    now = datetime(2025, 3, 3, 1, 0, tzinfo=UTC)

    assert search_since_date("Asia/Tokyo", 1, now) == date(2025, 3, 2)
    assert search_since_date("UTC", 1, datetime(2025, 3, 1, 23, 0, tzinfo=UTC)) == date(2025, 2, 28)


def test_build_search_query():
    assert (
        build_search_query("sales@ses.example.jp", date(2025, 3, 2))
        == "to:sales@ses.example.jp is:unread after:2025/03/02"
    )


@pytest.mark.asyncio
async def test_fetch_unread_returns_first_message_per_thread(mailbox, gmail, oauth):
    messages = await mailbox.fetch_unread(50, now=datetime(2025, 3, 3, 1, 0, tzinfo=UTC))

    assert [m.id for m in messages] == ["m-t-1", "m-t-2"]
    assert messages[0].subject == "件名 t-1"
    assert messages[0].body == "本文"
    gmail.search_thread_ids.assert_awaited_once_with(
        "access-1", "to:sales@ses.example.jp is:unread after:2025/03/02", max_results=50
    )
    oauth.refresh_access_token.assert_awaited_once_with("refresh-1")


@pytest.mark.asyncio
async def test_unreadable_thread_is_skipped(mailbox, gmail):
    async def get_thread(token, thread_id):
        if thread_id == "t-1":
            raise GoogleGmailError("boom", status_code=500)
        return _thread(thread_id, "m-2", "ok")

    gmail.get_thread = AsyncMock(side_effect=get_thread)

    messages = await mailbox.fetch_unread(10)

    assert [m.id for m in messages] == ["m-2"]


@pytest.mark.asyncio
async def test_search_failure_propagates(mailbox, gmail):
    gmail.search_thread_ids = AsyncMock(side_effect=GoogleGmailError("down", status_code=503))

    with pytest.raises(GoogleGmailError):
        await mailbox.fetch_unread(10)


@pytest.mark.asyncio
async def test_access_token_is_reused_until_expiry(mailbox, oauth):
    await mailbox.fetch_unread(10)
    await mailbox.fetch_unread(10)

    assert oauth.refresh_access_token.await_count == 1


@pytest.mark.asyncio
async def test_mark_read_removes_unread_label_on_thread(mailbox, gmail, make_message):
    message = make_message(subject="x", body="y")

    await mailbox.mark_read(message)

    gmail.modify_thread.assert_awaited_once_with(
        "access-1", message.thread_id, remove_label_ids=["UNREAD"]
    )


@pytest.mark.asyncio
async def test_apply_label_uses_existing_label_and_creates_missing_once(
    mailbox, gmail, make_message
):
    message = make_message(subject="x", body="y")

    await mailbox.apply_label(message, "INBOX/案件")
    await mailbox.apply_label(message, "INBOX/人材")
    await mailbox.apply_label(message, "INBOX/人材")

    gmail.create_label.assert_awaited_once_with("access-1", "INBOX/人材")
    assert gmail.get_labels.await_count == 2
    added = [call.kwargs["add_label_ids"] for call in gmail.modify_thread.await_args_list]
    assert added == [["Label_1"], ["Label_2"], ["Label_2"]]
