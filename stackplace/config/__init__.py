"""Search profiles."""

from .profiles import PROFILES, get_profile, list_profiles, FAST, BALANCED, THOROUGH

__all__ = ["PROFILES", "get_profile", "list_profiles", "FAST", "BALANCED", "THOROUGH"]
