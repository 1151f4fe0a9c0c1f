"""Stream gateway: admission, upstream access and manifest rewriting."""

from .manifest import proxy_url, rewrite_manifest, unwrap_proxy_url
from .rate_limiter import RateLimitDecision, SlidingWindowRateLimiter
from .service import GatewayResponse, GatewayService
from .upstream import UpstreamFetcher, UpstreamStream

__all__ = [
    "GatewayResponse",
    "GatewayService",
    "RateLimitDecision",
    "SlidingWindowRateLimiter",
    "UpstreamFetcher",
    "UpstreamStream",
    "proxy_url",
    "rewrite_manifest",
    "unwrap_proxy_url",
]
