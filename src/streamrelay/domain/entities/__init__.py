from .chain import (
    ChainOrderError,
    ChainState,
    ChainTrace,
    Extractor,
    Hop,
    TraceListener,
)
from .errors import (
    AutomatedClientRejected,
    ChallengeUnsolved,
    ExtractionError,
    ExtractionTimeout,
    HopExtractionFailed,
    HopNotFound,
    InvalidInput,
    RateLimited,
    StreamRelayError,
    UpstreamHttpError,
    UpstreamNotFound,
    UpstreamTimeout,
    UpstreamTransientError,
)
from .media import (
    Candidate,
    CandidateKind,
    Fingerprint,
    MediaLocator,
    MediaType,
    ProxyRequest,
    RateLimitEntry,
    ResolvedStream,
    ScreenProfile,
    StrategyKind,
)
from .progress import ProgressEvent, ProgressFn

__all__ = [
    "AutomatedClientRejected",
    "Candidate",
    "CandidateKind",
    "ChainOrderError",
    "ChainState",
    "ChainTrace",
    "ChallengeUnsolved",
    "ExtractionError",
    "ExtractionTimeout",
    "Extractor",
    "Fingerprint",
    "Hop",
    "HopExtractionFailed",
    "HopNotFound",
    "InvalidInput",
    "MediaLocator",
    "MediaType",
    "ProgressEvent",
    "ProgressFn",
    "ProxyRequest",
    "RateLimitEntry",
    "RateLimited",
    "ResolvedStream",
    "ScreenProfile",
    "StrategyKind",
    "StreamRelayError",
    "TraceListener",
    "UpstreamHttpError",
    "UpstreamNotFound",
    "UpstreamTimeout",
    "UpstreamTransientError",
]
