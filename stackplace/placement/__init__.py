"""Floorplan search: packing sequences, alignment, TSV clustering, cost model and annealing."""

from .packing import Direction, PackingSequence, PackingTuple, decode, encode
from .alignment import (
    AlignmentRequirement,
    AlignmentStatus,
    AlignmentType,
    AxisRequirement,
    Handling,
)
from .layout import Floorplan, Layout, LayoutOrchestrator, Operator, Placement
from .clustering import TSVIsland, cluster_signal_tsvs, find_hotspots
from .cost import REJECT_COST, CostModel, CostVector, CostWeights
from .signals import REFERENCE_SIGNALS, routing_congestion, voltage_domain_spread
from .annealing import (
    AnnealingPlacer,
    SearchConfig,
    SearchResult,
    StopReason,
    accept_probability,
)

__all__ = [
    "Direction",
    "PackingSequence",
    "PackingTuple",
    "decode",
    "encode",
    "AlignmentRequirement",
    "AlignmentStatus",
    "AlignmentType",
    "AxisRequirement",
    "Handling",
    "Floorplan",
    "Layout",
    "LayoutOrchestrator",
    "Operator",
    "Placement",
    "TSVIsland",
    "cluster_signal_tsvs",
    "find_hotspots",
    "REJECT_COST",
    "CostModel",
    "CostVector",
    "CostWeights",
    "REFERENCE_SIGNALS",
    "routing_congestion",
    "voltage_domain_spread",
    "AnnealingPlacer",
    "SearchConfig",
    "SearchResult",
    "StopReason",
    "accept_probability",
]
