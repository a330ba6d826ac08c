"""
Bot command parsing.

Inbound text is parsed once into a closed set of command kinds; handlers
match over the result. Anything that is not one of the known commands,
including unknown "/words", is plain conversation.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class HelpCommand:
    pass


@dataclass(frozen=True)
class ScheduleCommand:
    pass


@dataclass(frozen=True)
class BudgetCommand:
    pass


@dataclass(frozen=True)
class ReviewCommand:
    draft: str


@dataclass(frozen=True)
class SubmitCommand:
    campaign_hint: Optional[str]
    post_url: Optional[str]


@dataclass(frozen=True)
class PlainText:
    text: str


Command = Union[HelpCommand, ScheduleCommand, BudgetCommand, ReviewCommand, SubmitCommand, PlainText]


def _split_keyword(text: str) -> tuple[str, str]:
    """("/submit@MyBot", "a b") from "/submit@MyBot a b"."""
    parts = text.strip().split(maxsplit=1)
    if not parts:
        return "", ""
    keyword = parts[0].lower()
    args = parts[1].strip() if len(parts) > 1 else ""
    # Groups address commands as /cmd@BotName
    keyword = keyword.split("@", 1)[0]
    return keyword, args


def parse_submit_args(args: str) -> tuple[Optional[str], Optional[str]]:
    """
    Split "/submit" arguments into (campaign hint, post URL).

    The first token containing "status/" is the URL; every token before it
    is joined back into the hint. Tokens after the URL are ignored.
    """
    tokens = args.split()
    for index, token in enumerate(tokens):
        if "status/" in token:
            hint = " ".join(tokens[:index]) or None
            return hint, token
    return (" ".join(tokens) or None), None


def parse_command(text: Optional[str]) -> Command:
    text = text or ""
    keyword, args = _split_keyword(text)

    match keyword:
        case "/help":
            return HelpCommand()
        case "/schedule":
            return ScheduleCommand()
        case "/budget":
            return BudgetCommand()
        case "/review":
            return ReviewCommand(draft=args)
        case "/submit":
            hint, url = parse_submit_args(args)
            return SubmitCommand(campaign_hint=hint, post_url=url)
        case _:
            # Includes /start, which links the sender like any first message
            return PlainText(text)
