"""
Search Profiles

Named presets for the annealing schedule. A profile trades runtime for
solution quality; objective weights stay at their defaults unless a design
file overrides them.
"""

import copy
from typing import Dict, List

from ..placement.annealing import SearchConfig


# Quick feedback, e.g. while editing a design
FAST = SearchConfig(
    loop_factor=0.5,
    max_levels=40,
    cooling_fast=0.7,
    cooling_slow=0.9,
    frozen_levels=3,
)

BALANCED = SearchConfig(
    loop_factor=1.0,
    max_levels=100,
)

# Final runs; several times slower than balanced
THOROUGH = SearchConfig(
    loop_factor=2.0,
    max_levels=300,
    sampling_factor=2.0,
    cooling_fast=0.9,
    cooling_slow=0.98,
    frozen_levels=10,
)


PROFILES: Dict[str, SearchConfig] = {
    "fast": FAST,
    "balanced": BALANCED,
    "thorough": THOROUGH,
}


def get_profile(name: str) -> SearchConfig:
    """
    Get a search profile by name.

    Args:
        name: Profile identifier (e.g., "fast", "balanced")

    Returns:
        A copy of the profile's SearchConfig, safe to modify

    Raises:
        ValueError: If profile name is not found
    """
    if name not in PROFILES:
        available = ", ".join(sorted(PROFILES.keys()))
        raise ValueError(f"Unknown search profile '{name}'. Available: {available}")
    return copy.deepcopy(PROFILES[name])


def list_profiles() -> List[str]:
    """List all available search profile names."""
    return sorted(PROFILES.keys())
