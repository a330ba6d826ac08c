"""Unit tests for the X post fetch service."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from services import x_service
from services.x_service import (
    ContentFetchError,
    _parse_socialdata_tweet,
    _parse_x_api_tweet,
    extract_author_handle,
    extract_tweet_id,
    fetch_post,
)


class TestUrlParsing:
    """Tests for URL helpers."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("https://x.com/alice_x/status/1234567890", "1234567890"),
            ("https://twitter.com/alice_x/status/42?s=20", "42"),
            ("https://x.com/i/web/status/77", "77"),
            ("https://x.com/alice_x", None),
            ("https://x.com/alice_x/status/", None),
            ("", None),
        ],
    )
    def test_extract_tweet_id(self, url, expected):
        assert extract_tweet_id(url) == expected

    def test_extract_author_handle(self):
        assert extract_author_handle("https://twitter.com/Alice_X/status/42") == "Alice_X"
        assert extract_author_handle("https://example.com/status/42") is None


class TestParsing:
    """Tests for provider response parsing."""

    def test_socialdata_tweet(self):
        data = {
            "id_str": "42",
            "full_text": "Summer is here!",
            "tweet_created_at": "2026-10-15T12:00:00.000000Z",
            "user": {"screen_name": "alice_x"},
            "views_count": 1500,
            "favorite_count": 120,
            "retweet_count": 30,
            "reply_count": 12,
            "quote_count": 4,
        }

        post = _parse_socialdata_tweet(data, "42")

        assert post.id == "42"
        assert post.url == "https://x.com/alice_x/status/42"
        assert post.content == "Summer is here!"
        assert post.posted_at == datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)
        assert (post.metrics.views, post.metrics.likes, post.metrics.retweets) == (1500, 120, 30)
        assert (post.metrics.replies, post.metrics.quotes) == (12, 4)

    def test_socialdata_legacy_date_and_missing_views(self):
        data = {"text": "gm", "created_at": "Wed Oct 15 12:00:00 +0000 2026", "user": {}}

        post = _parse_socialdata_tweet(data, "42")

        assert post.posted_at == datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)
        assert post.metrics.views == 0
        assert post.url == "https://x.com/i/status/42"

    def test_empty_content_is_an_error(self):
        with pytest.raises(ContentFetchError):
            _parse_socialdata_tweet({"full_text": ""}, "42")

    def test_x_api_tweet(self):
        payload = {
            "data": {
                "id": "42",
                "text": "Summer is here!",
                "author_id": "u1",
                "created_at": "2026-10-15T12:00:00.000Z",
                "public_metrics": {
                    "impression_count": 900,
                    "like_count": 50,
                    "retweet_count": 5,
                    "reply_count": 3,
                    "quote_count": 1,
                },
            },
            "includes": {"users": [{"id": "u1", "username": "alice_x"}]},
        }

        post = _parse_x_api_tweet(payload, "42")

        assert post.author_handle == "alice_x"
        assert post.metrics.views == 900
        assert post.metrics.quotes == 1


class TestFetchPost:
    """Tests for fetch_post provider selection and error wrapping."""

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        with pytest.raises(ContentFetchError, match="No post id"):
            await fetch_post("https://x.com/alice_x")

    @pytest.mark.asyncio
    async def test_no_provider_configured(self):
        with patch.object(x_service.settings, "socialdata_api_key", ""), \
                patch.object(x_service.settings, "x_bearer_token", ""):
            with pytest.raises(ContentFetchError, match="No content fetcher configured"):
                await fetch_post("https://x.com/alice_x/status/42")

    @pytest.mark.asyncio
    async def test_socialdata_http_error(self):
        response = httpx.Response(
            404, text="not found", request=httpx.Request("GET", "https://api.socialdata.tools/twitter/tweets/42")
        )
        with patch.object(x_service.settings, "socialdata_api_key", "key"), \
                patch.object(httpx.AsyncClient, "get", AsyncMock(return_value=response)):
            with pytest.raises(ContentFetchError, match="404"):
                await fetch_post("https://x.com/alice_x/status/42")

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self):
        with patch.object(x_service.settings, "socialdata_api_key", "key"), \
                patch.object(httpx.AsyncClient, "get", AsyncMock(side_effect=httpx.ReadTimeout("timed out"))):
            with pytest.raises(ContentFetchError, match="timed out"):
                await fetch_post("https://x.com/alice_x/status/42")

    @pytest.mark.asyncio
    async def test_falls_back_to_x_api(self):
        payload = {"data": {"id": "42", "text": "gm", "public_metrics": {}}}
        response = httpx.Response(
            200, json=payload, request=httpx.Request("GET", "https://api.twitter.com/2/tweets/42")
        )
        get = AsyncMock(return_value=response)
        with patch.object(x_service.settings, "socialdata_api_key", ""), \
                patch.object(x_service.settings, "x_bearer_token", "bearer"), \
                patch.object(httpx.AsyncClient, "get", get):
            post = await fetch_post("https://x.com/alice_x/status/42")

        assert get.call_args.args[0] == "https://api.twitter.com/2/tweets/42"
        assert post.content == "gm"
        # Provider gave no timestamp; nothing is invented
        assert post.posted_at is None
