from .chain_strategy import ChainStrategyPort
from .cookie_jar import CookieJarPort

__all__ = [
    "ChainStrategyPort",
    "CookieJarPort",
]
