"""Port for a chain traversal strategy (fetch or automation)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamrelay.domain.entities import Candidate, ChainTrace, StrategyKind


@runtime_checkable
class ChainStrategyPort(Protocol):
    """Walks the hop table from an origin embed page to ranked stream candidates.

    Implementations record every hop attempt on ``trace`` and raise a
    ``StreamRelayError`` subclass on failure. Partial state is never
    returned; the first candidate is the best one.
    """

    kind: StrategyKind

    async def resolve(self, origin_url: str, trace: ChainTrace) -> list[Candidate]: ...
