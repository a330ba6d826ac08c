"""X/Twitter post fetch service.

Fetches a single post with its engagement counters so a KOL submission can
be recorded with verifiable metrics. SocialData is used when an API key is
configured; the official X API v2 (app-only bearer token) is the fallback.
Read-only access.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx

from config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

X_API_BASE = "https://api.twitter.com/2"

TWEET_ID_RE = re.compile(r"status/(\d+)")
AUTHOR_HANDLE_RE = re.compile(r"(?:x\.com|twitter\.com)/([^/?#]+)/status", re.IGNORECASE)


class ContentFetchError(Exception):
    """The post could not be fetched or had no content."""


@dataclass
class PostMetrics:
    views: int = 0
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    quotes: int = 0


@dataclass
class FetchedPost:
    id: str
    url: str
    content: str
    author_handle: str
    posted_at: Optional[datetime]
    metrics: PostMetrics


def extract_tweet_id(url: str) -> Optional[str]:
    """Numeric post id from a ".../status/<id>" URL, or None."""
    match = TWEET_ID_RE.search(url or "")
    return match.group(1) if match else None


def extract_author_handle(url: str) -> Optional[str]:
    match = AUTHOR_HANDLE_RE.search(url or "")
    return match.group(1) if match else None


def _parse_created_at(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO 8601 (X API v2) or RFC 2822 (legacy v1.1 shape) timestamps."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def _to_int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _parse_socialdata_tweet(data: dict, tweet_id: str) -> FetchedPost:
    """Parse a SocialData /twitter/tweets/{id} response (v1.1-style tweet)."""
    content = data.get("full_text") or data.get("text") or ""
    if not content:
        raise ContentFetchError(f"Post {tweet_id} has no content")

    user = data.get("user") or {}
    handle = user.get("screen_name") or ""
    views = data.get("views_count")
    if views is None:
        views = (data.get("views") or {}).get("count")

    return FetchedPost(
        id=data.get("id_str") or tweet_id,
        url=f"https://x.com/{handle or 'i'}/status/{tweet_id}",
        content=content,
        author_handle=handle,
        posted_at=_parse_created_at(data.get("tweet_created_at") or data.get("created_at")),
        metrics=PostMetrics(
            views=_to_int(views),
            likes=_to_int(data.get("favorite_count")),
            retweets=_to_int(data.get("retweet_count")),
            replies=_to_int(data.get("reply_count")),
            quotes=_to_int(data.get("quote_count")),
        ),
    )


def _parse_x_api_tweet(payload: dict, tweet_id: str) -> FetchedPost:
    """Parse an X API v2 GET /2/tweets/{id} response."""
    tweet = payload.get("data") or {}
    content = tweet.get("text") or ""
    if not content:
        raise ContentFetchError(f"Post {tweet_id} has no content")

    users = {u.get("id"): u for u in payload.get("includes", {}).get("users", [])}
    handle = (users.get(tweet.get("author_id")) or {}).get("username") or ""
    metrics = tweet.get("public_metrics", {})

    return FetchedPost(
        id=tweet.get("id") or tweet_id,
        url=f"https://x.com/{handle or 'i'}/status/{tweet_id}",
        content=content,
        author_handle=handle,
        posted_at=_parse_created_at(tweet.get("created_at")),
        metrics=PostMetrics(
            views=_to_int(metrics.get("impression_count")),
            likes=_to_int(metrics.get("like_count")),
            retweets=_to_int(metrics.get("retweet_count")),
            replies=_to_int(metrics.get("reply_count")),
            quotes=_to_int(metrics.get("quote_count")),
        ),
    )


async def _fetch_from_socialdata(tweet_id: str) -> FetchedPost:
    headers = {
        "Authorization": f"Bearer {settings.socialdata_api_key}",
        "Accept": "application/json",
    }
    async with httpx.AsyncClient(timeout=settings.content_fetch_timeout_seconds) as client:
        response = await client.get(
            f"{settings.socialdata_api_base}/twitter/tweets/{tweet_id}",
            headers=headers,
        )

    if response.status_code == 429:
        raise ContentFetchError("SocialData rate limit exceeded")
    if response.status_code != 200:
        raise ContentFetchError(f"SocialData returned {response.status_code}: {response.text[:200]}")

    return _parse_socialdata_tweet(response.json(), tweet_id)


async def _fetch_from_x_api(tweet_id: str) -> FetchedPost:
    headers = {"Authorization": f"Bearer {settings.x_bearer_token}"}
    async with httpx.AsyncClient(timeout=settings.content_fetch_timeout_seconds) as client:
        response = await client.get(
            f"{X_API_BASE}/tweets/{tweet_id}",
            params={
                "tweet.fields": "public_metrics,created_at,author_id",
                "expansions": "author_id",
                "user.fields": "username",
            },
            headers=headers,
        )

    if response.status_code == 429:
        raise ContentFetchError("X API rate limit exceeded")
    if response.status_code != 200:
        raise ContentFetchError(f"X API returned {response.status_code}: {response.text[:200]}")

    return _parse_x_api_tweet(response.json(), tweet_id)


async def fetch_post(url: str) -> FetchedPost:
    """Fetch post metadata and metrics for a post URL.

    Raises ContentFetchError on any failure, including when no fetcher is
    configured. Never retries. posted_at is None when the provider omits it.
    """
    tweet_id = extract_tweet_id(url)
    if not tweet_id:
        raise ContentFetchError(f"No post id in URL: {url}")

    try:
        if settings.socialdata_api_key:
            post = await _fetch_from_socialdata(tweet_id)
        elif settings.x_bearer_token:
            post = await _fetch_from_x_api(tweet_id)
        else:
            raise ContentFetchError("No content fetcher configured")
    except ContentFetchError:
        raise
    except Exception as e:
        raise ContentFetchError(f"Fetching post {tweet_id} failed: {e}") from e

    logger.info(
        f"Fetched post {post.id} by @{post.author_handle}: "
        f"{post.metrics.views} views, {post.metrics.likes} likes"
    )
    return post
