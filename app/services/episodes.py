"""Resolve per-season episode metadata from the realtime episode store.

The store speaks a small JSON protocol over a WebSocket. One query frame is
sent per season and the server answers with zero or more data pushes followed
by an ``ok`` status carrying the query's request id. Large pushes are split
across several transport messages, optionally preceded by a bare integer frame
announcing the fragment count.

:class:`EpisodeSession` implements the protocol without doing any I/O and
:class:`EpisodeStreamResolver` drives it over a real connection under a single
deadline.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, Callable, Mapping

from websockets.asyncio.client import connect as websocket_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import Settings
from ..utils import coerce_float

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_LIMIT = 100_000

_BARE_INTEGER_RE = re.compile(r"-?\d+")


@dataclass(frozen=True, slots=True)
class EpisodeRecord:
    """Episode metadata exactly as published by the realtime store."""

    name: str | None = None
    overview: str | None = None
    still_path: str | None = None
    vote_average: float | None = None
    runtime: int | None = None
    link: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EpisodeRecord":
        return cls(
            name=_optional_str(payload.get("name")),
            overview=_optional_str(payload.get("overview")),
            still_path=_optional_str(payload.get("still_path")),
            vote_average=coerce_float(payload.get("vote_average")),
            runtime=_optional_int(payload.get("runtime")),
            link=_optional_str(payload.get("link")),
        )


SeasonMap = dict[int, EpisodeRecord]
AggregateResult = dict[int, SeasonMap]


@dataclass(frozen=True, slots=True)
class SeasonQuery:
    """A single outstanding request for one season's episode subtree."""

    content_key: str
    season: int

    @property
    def request_id(self) -> int:
        return self.season

    @property
    def path(self) -> str:
        return f"Data/{self.content_key}/seasons/{self.season}/episodes"

    def to_frame(self) -> str:
        """Encode the query as a compact protocol frame."""

        frame = {
            "t": "d",
            "d": {
                "a": "q",
                "r": self.request_id,
                "b": {"p": self.path, "h": ""},
            },
        }
        return json.dumps(frame, separators=(",", ":"))


class SessionState(str, enum.Enum):
    CONNECTING = "connecting"
    AWAITING_SEASON = "awaiting_season"
    COMPLETED = "completed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.ABORTED})


def parse_season_from_path(path: str | None) -> int | None:
    """Return the integer segment following ``seasons`` in a store path."""

    if not path:
        return None
    segments = [segment for segment in path.strip("/").split("/") if segment]
    for position, segment in enumerate(segments[:-1]):
        if segment != "seasons":
            continue
        candidate = segments[position + 1]
        if candidate.isascii() and candidate.isdigit():
            return int(candidate)
    return None


def is_bare_integer(text: str) -> bool:
    """Return ``True`` for keep-alive frames that only carry an integer."""

    return _BARE_INTEGER_RE.fullmatch(text.strip()) is not None


@dataclass(slots=True)
class EpisodeSession:
    """Sans-IO state machine for one episode resolution session.

    Callers feed transport events in and send back whatever frame the session
    returns. Once :attr:`finished` is true the session ignores further input
    and :meth:`outcome` holds the final result.
    """

    content_key: str
    total_seasons: int
    buffer_limit: int = DEFAULT_BUFFER_LIMIT
    state: SessionState = SessionState.CONNECTING
    current_season: int = 1
    seasons_completed: int = 0
    buffer: str = ""
    result: AggregateResult = field(default_factory=dict)
    termination: str | None = None

    def __post_init__(self) -> None:
        if self.total_seasons < 1:
            raise ValueError("total_seasons must be at least 1")

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def open(self) -> str:
        """Handle the connection opening and return the first query frame."""

        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"Cannot open a session in state {self.state.value}")
        self.state = SessionState.AWAITING_SEASON
        logger.info(
            "Episode stream opened for %s, requesting season %s",
            self.content_key,
            self.current_season,
        )
        return SeasonQuery(self.content_key, self.current_season).to_frame()

    def receive(self, text: str) -> str | None:
        """Consume one inbound frame and return the next query frame, if any."""

        if self.finished:
            return None
        # Fragment counts only arrive between messages, digits mid-message are payload.
        if not self.buffer and is_bare_integer(text):
            return None

        self.buffer += text
        try:
            message = json.loads(self.buffer)
        except ValueError:
            if len(self.buffer) > self.buffer_limit:
                logger.error(
                    "Episode stream message for %s exceeded %s characters",
                    self.content_key,
                    self.buffer_limit,
                )
                self.buffer = ""
                self.abort("buffer overflow")
            return None

        self.buffer = ""
        return self._dispatch(message)

    def connection_closed(self) -> None:
        """Settle with the partial result after the transport closed."""

        if self.finished:
            return
        logger.info(
            "Episode stream for %s closed after %s/%s seasons",
            self.content_key,
            self.seasons_completed,
            self.total_seasons,
        )
        self._settle(SessionState.COMPLETED, "connection closed")

    def abort(self, reason: str) -> None:
        """Settle with an empty result."""

        if self.finished:
            return
        self._settle(SessionState.ABORTED, reason)

    def outcome(self) -> AggregateResult:
        if self.state is SessionState.ABORTED:
            return {}
        return self.result

    def _settle(self, state: SessionState, reason: str) -> None:
        self.state = state
        self.termination = reason

    def _dispatch(self, message: Any) -> str | None:
        if not isinstance(message, dict) or message.get("t") != "d":
            return None
        envelope = message.get("d")
        if not isinstance(envelope, dict):
            return None
        body = envelope.get("b")
        if not isinstance(body, dict):
            return None

        if "s" in body:
            if body["s"] == "ok" and envelope.get("r") is not None:
                return self._complete_season(envelope["r"])
            logger.warning(
                "Request %r for %s answered with status %r",
                envelope.get("r"),
                self.content_key,
                body["s"],
            )
            return None

        episodes = body.get("d")
        if episodes:
            self._merge_episodes(body.get("p"), episodes)
        return None

    def _complete_season(self, request_id: Any) -> str | None:
        if request_id != self.current_season:
            logger.warning(
                "Ignoring completion for request %r while season %s is pending",
                request_id,
                self.current_season,
            )
            return None

        self.result.setdefault(self.current_season, {})
        self.seasons_completed += 1
        logger.info(
            "Season %s complete (%s/%s)",
            self.current_season,
            self.seasons_completed,
            self.total_seasons,
        )
        if self.seasons_completed >= self.total_seasons:
            self._settle(SessionState.COMPLETED, "all seasons received")
            return None

        self.current_season += 1
        return SeasonQuery(self.content_key, self.current_season).to_frame()

    def _merge_episodes(self, path: Any, episodes: Any) -> None:
        if isinstance(episodes, dict):
            entries = list(episodes.items())
        elif isinstance(episodes, list):
            entries = [
                (str(index), value)
                for index, value in enumerate(episodes)
                if value is not None
            ]
        else:
            logger.warning("Unexpected episode payload type %s", type(episodes).__name__)
            return

        season = parse_season_from_path(path if isinstance(path, str) else None)
        if season is None:
            season = self.current_season

        parsed: SeasonMap = {}
        for key, value in entries:
            try:
                index = int(key)
            except (TypeError, ValueError):
                logger.warning("Skipping episode with non-numeric key %r", key)
                continue
            if not isinstance(value, dict):
                logger.warning("Skipping episode %s with non-object payload", key)
                continue
            parsed[index] = EpisodeRecord.from_payload(value)

        if not parsed:
            return
        self.result.setdefault(season, {}).update(parsed)
        logger.debug("Added %s episodes for season %s", len(parsed), season)


ConnectFactory = Callable[[str], AsyncContextManager[Any]]


class EpisodeStreamResolver:
    """Fetch every season of a show over one realtime connection."""

    def __init__(
        self,
        settings: Settings,
        *,
        connect: ConnectFactory | None = None,
    ) -> None:
        self._url = settings.realtime_url
        self._deadline = settings.episode_deadline_seconds
        self._buffer_limit = settings.episode_buffer_limit
        self._close_timeout = settings.realtime_close_timeout
        self._connect: ConnectFactory = connect or self._open_connection

    async def resolve(self, content_key: str, total_seasons: int) -> AggregateResult:
        """Return ``season -> index -> record`` for the show, possibly empty."""

        session = EpisodeSession(
            content_key,
            max(1, total_seasons),
            buffer_limit=self._buffer_limit,
        )
        try:
            await asyncio.wait_for(self._drive(session), timeout=self._deadline)
        except asyncio.TimeoutError:
            logger.warning("Episode stream for %s timed out", content_key)
            session.abort("deadline")
        except (OSError, WebSocketException) as exc:
            logger.warning("Episode stream for %s failed: %s", content_key, exc)
            session.abort("transport error")
        except Exception:  # pragma: no cover - defensive logging branch
            logger.exception("Episode stream for %s crashed", content_key)
            session.abort("unexpected error")
        return session.outcome()

    def _open_connection(self, url: str) -> AsyncContextManager[Any]:
        return websocket_connect(url, close_timeout=self._close_timeout)

    async def _drive(self, session: EpisodeSession) -> None:
        async with self._connect(self._url) as websocket:
            try:
                await websocket.send(session.open())
                async for message in websocket:
                    if isinstance(message, bytes):
                        message = message.decode("utf-8", errors="replace")
                    outgoing = session.receive(message)
                    if outgoing is not None:
                        await websocket.send(outgoing)
                    if session.finished:
                        break
            except ConnectionClosed:
                pass
        session.connection_closed()


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _optional_int(value: Any) -> int | None:
    number = coerce_float(value)
    if number is None:
        return None
    return int(number)
