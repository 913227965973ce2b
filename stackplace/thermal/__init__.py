"""Power-blurring thermal estimation."""

from .analyzer import ThermalAnalyzer, ThermalMask, ThermalResult

__all__ = ["ThermalAnalyzer", "ThermalMask", "ThermalResult"]
