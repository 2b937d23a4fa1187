"""Keyword command table: ordered (predicate, action) rules, first match wins."""

from __future__ import annotations

import logging
import re
import webbrowser
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple
from urllib.parse import quote

LOGGER = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I cannot do that yet"
HELP_TEXT = (
    "You can say: open files, dashboard, email, calendar, chat GPT, youtube, github, "
    "weather of any city, news, maps, play music, what time is it, what's the date, "
    "open any website, search anything, or help"
)
DEFAULT_MUSIC_URL = "https://www.youtube.com/watch?v=jfKfPfyJRdk"
VIDEO_FILTER = "&sp=EgIQAQ%253D%253D"

WEATHER_CITIES: Tuple[Tuple[str, str], ...] = (
    ("agra", "Agra, India"),
    ("delhi", "Delhi, India"),
    ("mumbai", "Mumbai, India"),
    ("bangalore", "Bangalore, India"),
    ("kolkata", "Kolkata, India"),
    ("chennai", "Chennai, India"),
    ("hyderabad", "Hyderabad, India"),
    ("pune", "Pune, India"),
    ("jaipur", "Jaipur, India"),
    ("lucknow", "Lucknow, India"),
    ("new york", "New York"),
    ("london", "London"),
    ("paris", "Paris"),
    ("tokyo", "Tokyo"),
    ("dubai", "Dubai"),
)

_MUSIC_PREFIX = re.compile(r"^(play|open|search)\s+", re.IGNORECASE)
_MUSIC_SUFFIX = re.compile(r"\s+music$", re.IGNORECASE)
_VIDEO_PREFIX = re.compile(r"^(youtube|video|play|open|search)\s+", re.IGNORECASE)
_VIDEO_SUFFIX = re.compile(r"\s+(on youtube|video|youtube)$", re.IGNORECASE)
_BARE_VIDEO = re.compile(r"^(youtube|video|play)$", re.IGNORECASE)
_KNOWN_TARGETS = re.compile(r"files|dashboard|email|calendar|github|news|maps")
_OPEN_SITE = re.compile(r"open\s+(.+)", re.IGNORECASE)
_SITE_NOISE = re.compile(r"website|site|dotcom", re.IGNORECASE)
_SITE_COM = re.compile(r"\.com$|com$", re.IGNORECASE)
_SEARCH = re.compile(r"(?:search|google)\s+(.+)", re.IGNORECASE)


@dataclass(frozen=True)
class CommandResult:
    """What to say, and optionally which URL to open first."""

    reply: str
    url: Optional[str] = None


Action = Callable[[str, datetime], Optional[CommandResult]]


@dataclass(frozen=True)
class CommandRule:
    """A named rule; an action returning None falls through to the next rule."""

    name: str
    keywords: Tuple[str, ...]
    action: Action

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


def _open(url: str, reply: str) -> Action:
    return lambda _text, _now: CommandResult(reply=reply, url=url)


def _music(text: str, _now: datetime) -> CommandResult:
    query = _MUSIC_SUFFIX.sub("", _MUSIC_PREFIX.sub("", text)).strip()
    if query and query != "music" and len(query) > 2:
        url = f"https://www.youtube.com/results?search_query={quote(query + ' music')}{VIDEO_FILTER}"
        return CommandResult(reply=f"Playing {query} music", url=url)
    return CommandResult(reply="Playing music", url=DEFAULT_MUSIC_URL)


def _video(text: str, _now: datetime) -> CommandResult:
    query = _VIDEO_SUFFIX.sub("", _VIDEO_PREFIX.sub("", text)).strip()
    if query and len(query) > 2 and not _BARE_VIDEO.match(text):
        url = f"https://www.youtube.com/results?search_query={quote(query)}{VIDEO_FILTER}"
        return CommandResult(reply=f"Playing {query}", url=url)
    return CommandResult(reply="Opening YouTube", url="https://www.youtube.com")


def _weather(text: str, _now: datetime) -> CommandResult:
    for key, city in WEATHER_CITIES:
        if key in text:
            url = f"https://www.google.com/search?q=weather+{quote(city)}"
            return CommandResult(reply=f"Opening weather for {city}", url=url)
    return CommandResult(reply="Opening weather", url="https://weather.com")


def _time(_text: str, now: datetime) -> CommandResult:
    hour = now.hour % 12 or 12
    suffix = "AM" if now.hour < 12 else "PM"
    return CommandResult(reply=f"The time is {hour}:{now.minute:02d} {suffix}")


def _date(_text: str, now: datetime) -> CommandResult:
    return CommandResult(reply=f"Today is {now.strftime('%A, %B')} {now.day}")


def _help(_text: str, _now: datetime) -> CommandResult:
    return CommandResult(reply=HELP_TEXT)


def _open_site(text: str, _now: datetime) -> Optional[CommandResult]:
    if _KNOWN_TARGETS.search(text):
        return None
    match = _OPEN_SITE.search(text)
    if not match:
        return None
    spoken = match.group(1).strip()
    site = re.sub(r"\s+", "", spoken)
    site = _SITE_NOISE.sub("", site)
    site = _SITE_COM.sub("", site)
    if len(site) <= 2:
        return None
    return CommandResult(reply=f"Opening {spoken}", url=f"https://{site}.com")


def _search(text: str, _now: datetime) -> Optional[CommandResult]:
    match = _SEARCH.search(text)
    if not match:
        return None
    query = match.group(1).strip()
    if len(query) <= 2:
        return None
    return CommandResult(
        reply=f"Searching for {query}",
        url=f"https://www.google.com/search?q={quote(query)}",
    )


DEFAULT_RULES: Tuple[CommandRule, ...] = (
    CommandRule("dashboard", ("dashboard", "linkedin"), _open("https://www.linkedin.com", "Opening dashboard")),
    CommandRule("music", ("music",), _music),
    CommandRule("files", ("files", "drive"), _open("https://drive.google.com", "Opening files")),
    CommandRule("chat", ("chat", "gpt"), _open("https://chatgpt.com", "Opening ChatGPT")),
    CommandRule("email", ("email", "mail", "gmail"), _open("https://mail.google.com", "Opening email")),
    CommandRule("calendar", ("calendar", "schedule"), _open("https://calendar.google.com", "Opening calendar")),
    CommandRule("youtube", ("youtube", "video", "play"), _video),
    CommandRule("github", ("github", "code"), _open("https://github.com", "Opening GitHub")),
    CommandRule("weather", ("weather", "forecast"), _weather),
    CommandRule("news", ("news",), _open("https://news.google.com", "Opening news")),
    CommandRule("maps", ("maps", "navigation"), _open("https://maps.google.com", "Opening maps")),
    CommandRule("time", ("time", "clock"), _time),
    CommandRule("date", ("date", "today"), _date),
    CommandRule("help", ("help",), _help),
    CommandRule("open", ("open",), _open_site),
    CommandRule("search", ("search", "google"), _search),
)


class CommandRouter:
    """Matches a command against the rule table and carries out the result."""

    def __init__(
        self,
        speak: Callable[[str], None],
        open_url: Callable[[str], object] = webbrowser.open,
        rules: Sequence[CommandRule] = DEFAULT_RULES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._speak = speak
        self._open_url = open_url
        self._rules = tuple(rules)
        self._clock = clock

    @property
    def rules(self) -> Tuple[CommandRule, ...]:
        return self._rules

    def resolve(self, text: str) -> Tuple[str, CommandResult]:
        """Return the name of the first matching rule and its result."""
        text = text.lower().strip()
        now = self._clock()
        for rule in self._rules:
            if not rule.matches(text):
                continue
            result = rule.action(text, now)
            if result is not None:
                return rule.name, result
        return "fallback", CommandResult(reply=FALLBACK_REPLY)

    def handle(self, text: str) -> None:
        name, result = self.resolve(text)
        if name == "fallback":
            LOGGER.info("Command not recognized: %r", text)
        else:
            LOGGER.info("Command %r matched rule %s", text, name)
        if result.url is not None:
            self._open_url(result.url)
        self._speak(result.reply)

    __call__ = handle


__all__ = [
    "CommandResult",
    "CommandRouter",
    "CommandRule",
    "DEFAULT_RULES",
    "FALLBACK_REPLY",
    "HELP_TEXT",
]
