"""
StackPlace - Floorplanning for 3D-Stacked Integrated Circuits

Places rectangular blocks on a stack of dies with simulated annealing over
corner-block-list packing sequences, optimizing area, wirelength, TSV count,
a power-blurring thermal estimate and inter-block alignment requirements.
"""

__version__ = "0.1.0"
__author__ = "StackPlace Team"

from .design.abstraction import Block, Design, InvalidDesignError, Net, Terminal
from .design.loader import load_design
from .placement.annealing import AnnealingPlacer, SearchConfig, SearchResult
from .config.profiles import get_profile

__all__ = [
    "Block",
    "Design",
    "InvalidDesignError",
    "Net",
    "Terminal",
    "load_design",
    "AnnealingPlacer",
    "SearchConfig",
    "SearchResult",
    "get_profile",
]
