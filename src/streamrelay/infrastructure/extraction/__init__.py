"""Embed-chain extraction: fingerprints, stealth, hops and strategies."""

from .browser_chain import BrowserChainStrategy
from .browser_session import BrowserSessionFactory, ExtractionSession
from .fetch_chain import FetchChainStrategy
from .fingerprint import FingerprintPool
from .hops import HOP_TABLE, build_hop_table
from .network_observer import NetworkObserver
from .providers import PROVIDERS, alternate_providers, get_provider
from .ranking import RankingPolicy

__all__ = [
    "HOP_TABLE",
    "PROVIDERS",
    "BrowserChainStrategy",
    "BrowserSessionFactory",
    "ExtractionSession",
    "FetchChainStrategy",
    "FingerprintPool",
    "NetworkObserver",
    "RankingPolicy",
    "alternate_providers",
    "build_hop_table",
    "get_provider",
]
