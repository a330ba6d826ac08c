"""Integration tests for the Telegram webhook endpoint.

Requests go through the FastAPI app; sendMessage and the post fetcher are
patched.
"""

from itertools import count
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from models import (
    KOL,
    Post,
    PostStatus,
    TelegramChat,
    TelegramChatKOL,
    TelegramChatStatus,
    TelegramChatType,
    TelegramGroupMessage,
    TelegramMessage,
)
from services.telegram_client import TelegramApiResponse
from tests.conftest import WEBHOOK_SECRET
from tests.factories import create_assignment, create_campaign

GROUP_CHAT = {"id": -100123, "type": "supergroup", "title": "KOL x Summer Launch"}
ALICE = {"id": 555, "is_bot": False, "first_name": "Alice", "username": "alice_x"}
POST_URL = "https://x.com/alice_x/status/42"

_update_ids = count(1)


def message_update(text: str, chat: dict = GROUP_CHAT, sender: dict | None = ALICE) -> dict:
    message = {"message_id": next(_update_ids), "date": 1760000000, "chat": chat, "text": text}
    if sender is not None:
        message["from"] = sender
    return {"update_id": next(_update_ids), "message": message}


async def post_update(client: AsyncClient, payload, secret: str | None = WEBHOOK_SECRET):
    headers = {"X-Telegram-Bot-Api-Secret-Token": secret} if secret else {}
    return await client.post("/telegram/webhook", json=payload, headers=headers)


def sent_texts(send_message) -> list[str]:
    return [call.args[1] for call in send_message.call_args_list]


async def count_rows(session_factory, column) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(column)))


class TestWebhookAuthentication:
    """Tests for the secret-token check."""

    @pytest.mark.asyncio
    async def test_missing_secret_is_rejected(self, client, organization, send_message):
        response = await post_update(client, message_update("/help"), secret=None)

        assert response.status_code == 401
        send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_secret_is_rejected(self, client, organization, session_factory, send_message):
        response = await post_update(client, message_update("hello"), secret="not-the-secret")

        assert response.status_code == 401
        assert await count_rows(session_factory, TelegramChat.id) == 0

    @pytest.mark.asyncio
    async def test_status_requires_secret(self, client, organization):
        response = await client.get("/telegram/status")

        assert response.status_code == 401


class TestWebhookAcknowledgement:
    """The webhook acknowledges every authenticated call."""

    @pytest.mark.asyncio
    async def test_malformed_payload_is_acknowledged(self, client, organization):
        response = await post_update(client, {"update_id": 1, "message": {"chat": "not-a-chat"}})

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_non_json_body_is_acknowledged(self, client, organization):
        response = await client.post(
            "/telegram/webhook",
            content=b"not json",
            headers={"X-Telegram-Bot-Api-Secret-Token": WEBHOOK_SECRET},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_unhandled_update_kind_is_acknowledged(self, client, organization):
        response = await post_update(client, {"update_id": 5, "edited_message": {"message_id": 1}})

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_downstream_exception_is_acknowledged(self, client, organization, alice_assignment, send_message):
        with patch(
            "services.command_handlers.record_submission",
            AsyncMock(side_effect=RuntimeError("database exploded")),
        ):
            response = await post_update(client, message_update(f"/submit {POST_URL}"))

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_channel_posts_are_ignored(self, client, organization, session_factory):
        channel = {"id": -100777, "type": "channel", "title": "Announcements"}
        response = await post_update(client, message_update("news", chat=channel, sender=None))

        assert response.status_code == 200
        assert await count_rows(session_factory, TelegramChat.id) == 0


class TestMembershipEvents:
    """my_chat_member updates through the webhook."""

    @pytest.mark.asyncio
    async def test_join_leave_rejoin(self, client, organization, session_factory):
        def update(status):
            return {
                "update_id": next(_update_ids),
                "my_chat_member": {"chat": GROUP_CHAT, "new_chat_member": {"status": status}},
            }

        for status in ("member", "left", "administrator"):
            response = await post_update(client, update(status))
            assert response.status_code == 200

        async with session_factory() as session:
            chats = (await session.execute(select(TelegramChat))).scalars().all()

        assert len(chats) == 1
        assert chats[0].status == TelegramChatStatus.ACTIVE
        assert chats[0].bot_left_at is None


class TestSubmitCommand:
    """/submit end to end."""

    @pytest.mark.asyncio
    async def test_submit_and_redelivery(
        self, client, organization, alice, alice_assignment, session_factory, send_message, fetch_post
    ):
        """One assignment, one post; a redelivered update only gets 'already submitted'."""
        payload = message_update(f"/submit {POST_URL}")

        first = await post_update(client, payload)
        second = await post_update(client, payload)

        assert first.status_code == 200
        assert second.status_code == 200
        fetch_post.assert_awaited_once()

        async with session_factory() as session:
            posts = (await session.execute(select(Post))).scalars().all()
            kol = await session.get(KOL, alice.id)
            links = (await session.execute(select(TelegramChatKOL))).scalars().all()

        assert len(posts) == 1
        assert posts[0].tweet_id == "42"
        assert posts[0].status == PostStatus.POSTED
        assert posts[0].impressions == 1500
        assert kol.telegram_chat_id == "-100123"
        assert len(links) == 1
        assert links[0].matched_by == "command"
        assert links[0].telegram_user_id == "555"

        texts = sent_texts(send_message)
        destinations = [call.args[0] for call in send_message.call_args_list]
        # campaign notification, confirmation, redelivery reply
        assert destinations == ["-100999", "-100123", "-100123"]
        confirmation = texts[1]
        assert "Summer Launch" in confirmation
        assert POST_URL in confirmation
        assert "Campaign group notified." in confirmation
        assert "Progress: 1/2 (50%)" in confirmation
        assert "already been submitted" in texts[-1]

    @pytest.mark.asyncio
    async def test_notification_failure_is_reported_not_fatal(
        self, client, organization, alice_assignment, session_factory, fetch_post
    ):
        async def send(chat_id, text, **kwargs):
            if chat_id == "-100999":
                return TelegramApiResponse(ok=False, description="Forbidden: bot is not a member")
            return TelegramApiResponse(ok=True, result={"message_id": 2})

        with patch("services.telegram_client.TelegramClient.send_message", AsyncMock(side_effect=send)) as mock:
            await post_update(client, message_update(f"/submit {POST_URL}"))

        assert await count_rows(session_factory, Post.id) == 1
        reply = mock.call_args_list[-1].args[1]
        assert "could not notify the campaign group (Forbidden: bot is not a member)" in reply

    @pytest.mark.asyncio
    async def test_hint_picks_campaign(
        self, client, organization, alice, alice_assignment, session_factory, send_message, fetch_post
    ):
        winter = await self._second_campaign(session_factory, organization, alice)

        await post_update(client, message_update(f"/submit winter {POST_URL}"))

        async with session_factory() as session:
            post = (await session.execute(select(Post))).scalar_one()
        assert post.campaign_id == winter

    @pytest.mark.asyncio
    async def test_multiple_campaigns_without_hint(
        self, client, organization, alice, alice_assignment, session_factory, send_message, fetch_post
    ):
        await self._second_campaign(session_factory, organization, alice)

        await post_update(client, message_update(f"/submit {POST_URL}"))

        reply = sent_texts(send_message)[-1]
        assert "multiple active campaigns" in reply
        assert "- Summer Launch" in reply
        assert "- Winter Drop" in reply
        fetch_post.assert_not_awaited()
        assert await count_rows(session_factory, Post.id) == 0

    @pytest.mark.asyncio
    async def test_unmatched_hint(
        self, client, organization, alice, alice_assignment, session_factory, send_message, fetch_post
    ):
        await self._second_campaign(session_factory, organization, alice)

        await post_update(client, message_update(f"/submit autumn {POST_URL}"))

        reply = sent_texts(send_message)[-1]
        assert 'No active campaign matching "autumn"' in reply
        assert await count_rows(session_factory, Post.id) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text, sender, expected",
        [
            ("/submit https://x.com/alice_x", ALICE, "Usage: /submit"),
            ("/submit", ALICE, "Usage: /submit"),
            (f"/submit {POST_URL}", {"id": 999, "username": "stranger"}, "No KOL profile found for @stranger"),
            (f"/submit {POST_URL}", {"id": 999}, "Unable to identify you"),
        ],
    )
    async def test_no_match_always_replies(
        self, client, organization, alice_assignment, session_factory, send_message, fetch_post,
        text, sender, expected,
    ):
        await post_update(client, message_update(text, sender=sender))

        assert expected in sent_texts(send_message)[-1]
        assert await count_rows(session_factory, Post.id) == 0

    @pytest.mark.asyncio
    async def test_no_active_assignment(self, client, organization, alice, session_factory, send_message, fetch_post):
        await post_update(client, message_update(f"/submit {POST_URL}"))

        assert "No active campaign found" in sent_texts(send_message)[-1]
        assert await count_rows(session_factory, Post.id) == 0

    @pytest.mark.asyncio
    async def test_fetch_failure_replies(self, client, organization, alice_assignment, session_factory, send_message):
        from services.x_service import ContentFetchError

        with patch("services.deliverables.fetch_post", AsyncMock(side_effect=ContentFetchError("404"))):
            await post_update(client, message_update(f"/submit {POST_URL}"))

        assert "Could not fetch the post" in sent_texts(send_message)[-1]
        assert await count_rows(session_factory, Post.id) == 0

    @pytest.mark.asyncio
    async def test_private_submit_does_not_pin_home_chat(
        self, client, organization, alice, alice_assignment, session_factory, send_message, fetch_post
    ):
        private = {"id": 555, "type": "private"}

        await post_update(client, message_update(f"/submit {POST_URL}", chat=private))

        async with session_factory() as session:
            kol = await session.get(KOL, alice.id)
        assert kol.telegram_chat_id is None
        assert await count_rows(session_factory, Post.id) == 1

    @staticmethod
    async def _second_campaign(session_factory, organization, alice) -> str:
        async with session_factory() as session:
            winter = await create_campaign(session, organization, name="Winter Drop")
            await create_assignment(session, winter, alice)
            await session.commit()
            return winter.id


class TestReviewCommand:
    """/review through the webhook."""

    @pytest.mark.asyncio
    async def test_review_creates_draft_and_pins_home_chat(
        self, client, organization, alice, alice_assignment, session_factory, send_message
    ):
        await post_update(client, message_update("/review Summer is coming, stay tuned!"))

        async with session_factory() as session:
            post = (await session.execute(select(Post))).scalar_one()
            kol = await session.get(KOL, alice.id)
            logged = (await session.execute(select(TelegramGroupMessage.direction))).scalars().all()

        assert post.status == PostStatus.DRAFT
        assert post.content == "Summer is coming, stay tuned!"
        assert post.tweet_id is None
        assert kol.telegram_chat_id == "-100123"
        reply = sent_texts(send_message)[-1]
        assert "Draft submitted for review." in reply
        assert "Campaign: Summer Launch" in reply
        assert "KOL: alice" in reply
        assert sorted(d.value for d in logged) == ["INBOUND", "OUTBOUND"]

    @pytest.mark.asyncio
    async def test_review_without_draft(self, client, organization, alice_assignment, session_factory, send_message):
        await post_update(client, message_update("/review"))

        assert "Usage: /review" in sent_texts(send_message)[-1]
        assert await count_rows(session_factory, Post.id) == 0

    @pytest.mark.asyncio
    async def test_review_unknown_kol(self, client, organization, session_factory, send_message):
        await post_update(client, message_update("/review hi", sender={"id": 1, "username": "nobody"}))

        assert "No KOL profile found for @nobody" in sent_texts(send_message)[-1]
        assert await count_rows(session_factory, Post.id) == 0


class TestBudgetCommand:
    """/budget through the webhook."""

    @pytest.mark.asyncio
    async def test_unauthorized_sender_gets_no_reply(self, client, organization, summer_launch, send_message):
        response = await post_update(client, message_update("/budget", sender={"id": 7, "username": "random_user"}))

        assert response.status_code == 200
        send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_budget_breakdown(self, client, organization, alice_assignment, send_message):
        await post_update(client, message_update("/budget", sender={"id": 8, "username": "Ops_Lead"}))

        reply = sent_texts(send_message)[-1]
        assert "Budget: Summer Launch" in reply
        assert "Total: $10,000" in reply
        assert "Allocated: $2,500" in reply
        assert "Remaining: $7,500" in reply
        assert "KOLs: 1" in reply

    @pytest.mark.asyncio
    async def test_budget_in_private_chat(self, client, organization, send_message):
        sender = {"id": 8, "username": "ops_lead"}
        await post_update(client, message_update("/budget", chat={"id": 8, "type": "private"}, sender=sender))

        assert "inside a campaign group" in sent_texts(send_message)[-1]

    @pytest.mark.asyncio
    async def test_budget_unmatched_group(self, client, organization, summer_launch, send_message):
        chat = {"id": -100555, "type": "group", "title": "KOL x Winter"}
        await post_update(client, message_update("/budget", chat=chat, sender={"id": 8, "username": "ops_lead"}))

        assert "Could not match this chat" in sent_texts(send_message)[-1]


class TestStaticCommands:
    """/help and /schedule."""

    @pytest.mark.asyncio
    async def test_help(self, client, organization, send_message):
        await post_update(client, message_update("/help"))

        assert "/submit" in sent_texts(send_message)[-1]

    @pytest.mark.asyncio
    async def test_schedule(self, client, organization, send_message):
        await post_update(client, message_update("/schedule@AcmeKolBot"))

        assert "https://cal.example.com/agency" in sent_texts(send_message)[-1]


class TestPlainMessages:
    """Non-command text."""

    @pytest.mark.asyncio
    async def test_group_text_is_logged_and_links_kol(self, client, organization, alice, session_factory, send_message):
        await post_update(client, message_update("gm team"))

        async with session_factory() as session:
            entry = (await session.execute(select(TelegramGroupMessage))).scalar_one()
            link = (await session.execute(select(TelegramChatKOL))).scalar_one()

        assert entry.content == "gm team"
        assert entry.sender_username == "alice_x"
        assert link.kol_id == alice.id
        assert link.matched_by == "username"
        send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_group_text_from_stranger_is_only_logged(self, client, organization, session_factory):
        await post_update(client, message_update("hello", sender={"id": 3, "username": "stranger"}))

        assert await count_rows(session_factory, TelegramGroupMessage.id) == 1
        assert await count_rows(session_factory, TelegramChatKOL.id) == 0

    @pytest.mark.asyncio
    async def test_private_start_links_and_greets(self, client, organization, alice, session_factory, send_message):
        private = {"id": 555, "type": "private"}

        await post_update(client, message_update("/start", chat=private))

        async with session_factory() as session:
            chat = (await session.execute(select(TelegramChat))).scalar_one()
            entry = (await session.execute(select(TelegramMessage))).scalar_one()

        assert chat.type == TelegramChatType.PRIVATE
        assert chat.title == "Alice"
        assert entry.kol_id == alice.id
        assert entry.content == "/start"
        assert "You're now connected" in sent_texts(send_message)[-1]

    @pytest.mark.asyncio
    async def test_private_text_from_unknown_sender_is_dropped(self, client, organization, session_factory, send_message):
        private = {"id": 4, "type": "private"}

        response = await post_update(client, message_update("hi", chat=private, sender={"id": 4, "username": "ghost"}))

        assert response.status_code == 200
        assert await count_rows(session_factory, TelegramMessage.id) == 0
        send_message.assert_not_called()


class TestStatusEndpoint:
    """GET /telegram/status."""

    @pytest.mark.asyncio
    async def test_counts(self, client, organization, alice_assignment, send_message, fetch_post):
        await post_update(client, message_update(f"/submit {POST_URL}"))

        response = await client.get("/telegram/status", headers={"X-Telegram-Bot-Api-Secret-Token": WEBHOOK_SECRET})

        assert response.status_code == 200
        data = response.json()
        assert data["total_chats"] == 1
        assert data["chats_by_status"] == {"ACTIVE": 1}
        assert data["linked_kols"] == 1
        assert data["telegram_deliverables"] == 1


class TestRedelivery:
    """Telegram delivers at least once; repeats must not duplicate state."""

    @pytest.mark.asyncio
    async def test_review_redelivery_keeps_one_draft(
        self, client, organization, alice_assignment, session_factory, send_message
    ):
        payload = message_update("/review my draft text")

        await post_update(client, payload)
        await post_update(client, payload)

        async with session_factory() as session:
            drafts = (await session.execute(select(Post))).scalars().all()
        assert len(drafts) == 1
        assert drafts[0].status == PostStatus.DRAFT
        assert drafts[0].source_chat_id == "-100123"
        assert drafts[0].source_message_id == str(payload["message"]["message_id"])
        replies = sent_texts(send_message)
        assert len(replies) == 2
        assert all("Draft submitted for review." in text for text in replies)

    @pytest.mark.asyncio
    async def test_separate_reviews_each_get_a_draft(
        self, client, organization, alice_assignment, session_factory, send_message
    ):
        await post_update(client, message_update("/review first idea"))
        await post_update(client, message_update("/review second idea"))

        assert await count_rows(session_factory, Post.id) == 2

    @pytest.mark.asyncio
    async def test_group_text_redelivery_is_logged_once(self, client, organization, alice, session_factory):
        payload = message_update("gm team")

        await post_update(client, payload)
        await post_update(client, payload)

        assert await count_rows(session_factory, TelegramGroupMessage.id) == 1
        assert await count_rows(session_factory, TelegramChatKOL.id) == 1

    @pytest.mark.asyncio
    async def test_submit_redelivery_logs_inbound_once(
        self, client, organization, alice_assignment, session_factory, send_message, fetch_post
    ):
        payload = message_update(f"/submit {POST_URL}")

        await post_update(client, payload)
        await post_update(client, payload)

        async with session_factory() as session:
            directions = (await session.execute(select(TelegramGroupMessage.direction))).scalars().all()
        assert [d.value for d in directions].count("INBOUND") == 1

    @pytest.mark.asyncio
    async def test_private_text_redelivery_is_logged_once(
        self, client, organization, alice, session_factory, send_message
    ):
        payload = message_update("hello agency", chat={"id": 555, "type": "private"})

        await post_update(client, payload)
        await post_update(client, payload)

        assert await count_rows(session_factory, TelegramMessage.id) == 1


class TestSubmitFetchContract:
    """Any fetch failure still answers the KOL."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "fetcher",
        [
            AsyncMock(side_effect=httpx.ConnectTimeout("connect timed out")),
            AsyncMock(return_value=None),
        ],
        ids=["unexpected-exception", "empty-result"],
    )
    async def test_fetch_problem_replies(
        self, client, organization, alice_assignment, session_factory, send_message, fetcher
    ):
        with patch("services.deliverables.fetch_post", fetcher):
            response = await post_update(client, message_update(f"/submit {POST_URL}"))

        assert response.status_code == 200
        replies = sent_texts(send_message)
        assert len(replies) == 1
        assert "Could not fetch the post" in replies[0]
        assert await count_rows(session_factory, Post.id) == 0


class TestPrivateChatReactivation:
    """A private chat the bot was removed from becomes ACTIVE again on a new message."""

    @pytest.mark.asyncio
    async def test_kicked_private_chat_is_reactivated(
        self, client, organization, alice, session_factory, send_message
    ):
        private = {"id": 555, "type": "private"}
        await post_update(client, message_update("/start", chat=private))
        await post_update(client, {
            "update_id": next(_update_ids),
            "my_chat_member": {"chat": private, "new_chat_member": {"status": "kicked"}},
        })

        async with session_factory() as session:
            chat = (await session.execute(select(TelegramChat))).scalar_one()
        assert chat.status == TelegramChatStatus.KICKED

        await post_update(client, message_update("back again", chat=private))

        async with session_factory() as session:
            chat = (await session.execute(select(TelegramChat))).scalar_one()
        assert chat.status == TelegramChatStatus.ACTIVE
        assert chat.bot_left_at is None
