"""Chain resolver state machine.

The embed chain is a fixed sequence of hops. Each hop owns an ordered list
of pure extractor functions; the first one that yields a valid URL
carrying the hop's marker advances the machine::

    START -> HOP1_RESOLVED -> HOP2_RESOLVED -> HOP3_RESOLVED -> STREAM_FOUND
                                                           \\-> FAILED

``ChainTrace`` records every transition so callers (and tests) can check
that hop N+1 was never attempted before hop N produced a URL.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

# (page content, page url) -> candidate url or None
Extractor = Callable[[str, str], str | None]
# (trace, event kind, hop or state name, url)
TraceListener = Callable[["ChainTrace", str, str, str | None], None]


class ChainState(str, Enum):
    START = "start"
    HOP1_RESOLVED = "hop1Resolved"
    HOP2_RESOLVED = "hop2Resolved"
    HOP3_RESOLVED = "hop3Resolved"
    STREAM_FOUND = "streamFound"
    FAILED = "failed"


_ORDER: tuple[ChainState, ...] = (
    ChainState.START,
    ChainState.HOP1_RESOLVED,
    ChainState.HOP2_RESOLVED,
    ChainState.HOP3_RESOLVED,
    ChainState.STREAM_FOUND,
)


@dataclass(frozen=True)
class Hop:
    name: str
    extractors: tuple[Extractor, ...]
    accepted_next_marker: str
    gesture_selectors: tuple[str, ...] = ()


class ChainOrderError(RuntimeError):
    """Raised when a hop is attempted out of order."""


@dataclass
class ChainTrace:
    strategy: str
    state: ChainState = ChainState.START
    urls: list[str] = field(default_factory=list)
    events: list[tuple[str, str, str | None]] = field(default_factory=list)
    listener: TraceListener | None = field(default=None, repr=False, compare=False)

    @property
    def resolved_hops(self) -> int:
        if self.state is ChainState.FAILED:
            return len(self.urls)
        return _ORDER.index(self.state)

    @property
    def finished(self) -> bool:
        return self.state in (ChainState.STREAM_FOUND, ChainState.FAILED)

    def begin_hop(self, index: int, hop_name: str) -> None:
        """Record an attempt on hop ``index`` (0-based)."""
        if self.finished:
            raise ChainOrderError(f"chain already {self.state.value}")
        if index != self.resolved_hops:
            raise ChainOrderError(
                f"hop {index} ({hop_name}) attempted with "
                f"{self.resolved_hops} hop(s) resolved"
            )
        self._record("attempt", hop_name, None)

    def advance(self, url: str) -> ChainState:
        if self.finished:
            raise ChainOrderError(f"chain already {self.state.value}")
        nxt = _ORDER[_ORDER.index(self.state) + 1]
        self.urls.append(url)
        self.state = nxt
        self._record("advance", nxt.value, url)
        return nxt

    def fail(self, reason: str) -> None:
        if self.state is ChainState.STREAM_FOUND:
            raise ChainOrderError("cannot fail a completed chain")
        previous = self.state
        self.state = ChainState.FAILED
        self._record("fail", previous.value, reason)

    def _record(self, kind: str, name: str, url: str | None) -> None:
        self.events.append((kind, name, url))
        if self.listener is not None:
            self.listener(self, kind, name, url)

    def summary(self) -> tuple[str, ...]:
        return tuple(f"{kind}:{name}" for kind, name, _ in self.events)
