"""Tests for search profiles."""

import pytest

from stackplace.config.profiles import BALANCED, PROFILES, get_profile, list_profiles


class TestProfiles:
    """Tests for profile lookup."""

    def test_list_profiles(self):
        assert list_profiles() == ["balanced", "fast", "thorough"]

    def test_get_profile(self):
        config = get_profile("balanced")
        assert config.max_levels == BALANCED.max_levels

    def test_get_profile_returns_copy(self):
        config = get_profile("fast")
        config.max_levels = 1
        config.weights.area = 0.0
        assert PROFILES["fast"].max_levels != 1
        assert PROFILES["fast"].weights.area == 1.0

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Available"):
            get_profile("exhaustive")

    @pytest.mark.parametrize("name", ["fast", "balanced", "thorough"])
    def test_profiles_valid(self, name):
        get_profile(name).validate()

    def test_profiles_ordered_by_effort(self):
        fast, balanced, thorough = (get_profile(n) for n in ("fast", "balanced", "thorough"))
        assert fast.max_levels < balanced.max_levels < thorough.max_levels
        assert fast.inner_steps(20) < thorough.inner_steps(20)
