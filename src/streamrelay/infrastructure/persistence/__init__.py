"""Persisted browser state (cookie jars, profile directories)."""

from .cookie_jar_store import DiskcacheCookieJarStore
from .profile_registry import ProfileRegistry

__all__ = ["DiskcacheCookieJarStore", "ProfileRegistry"]
