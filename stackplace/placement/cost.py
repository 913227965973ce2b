"""
Cost Model

Combines the objectives of a decoded layout into one scalar:

- area / outline: blended by the fraction of recently accepted layouts
  that fit the fixed outline, so the search first steers towards the
  outline's aspect ratio and then towards minimum area
- wirelength (HPWL) and TSV count: per net and die, with the net's blocks
  on the next populated die above included in the bounding box, and the
  signal-TSV island of that crossing when TSVs are clustered
- thermal: power-blurring estimate, peak rise times mean rise
- alignment: FLEXIBLE requirements add their weighted mismatch; any
  unfulfilled STRICT requirement makes the candidate's total REJECT_COST
- external signals: named callables on the layout, weighted by name

Wirelength, TSVs, thermal and alignment are normalized by the maxima seen
during the search's initial sampling.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..design.abstraction import Design
from ..design.geometry import Point
from ..diagnostics import Diagnostics
from ..thermal.analyzer import ThermalAnalyzer, ThermalResult
from .alignment import AlignmentEvaluation, evaluate
from .clustering import TSVIsland, cluster_signal_tsvs, find_hotspots, net_segments
from .layout import Layout

logger = logging.getLogger(__name__)

# Total cost of a candidate violating a STRICT alignment requirement
REJECT_COST = float("inf")

Signal = Callable[[Layout], float]


@dataclass
class CostWeights:
    """Objective weights.

    The alignment weight scales FLEXIBLE mismatch only; STRICT requirements
    are a hard gate regardless of weights.
    """
    area: float = 1.0
    wirelength: float = 0.3
    tsvs: float = 0.1
    thermal: float = 0.2
    alignment: float = 0.5
    signals: Dict[str, float] = field(default_factory=dict)

    def signal_weight(self, name: str) -> float:
        return self.signals.get(name, 1.0)


@dataclass
class Normalization:
    """Maxima used to scale raw cost terms to ~[0, 1]."""
    wirelength: float = 1.0
    tsvs: float = 1.0
    thermal: float = 1.0
    alignment: float = 1.0


@dataclass(frozen=True)
class CostVector:
    """Per-objective breakdown of one candidate's cost.

    Terms are raw (un-normalized) values; total and reference are the
    weighted, normalized combination. reference is the total with a fit
    ratio of 1, which makes candidates from different temperature levels
    comparable.
    """
    area: float
    outline: float
    wirelength: float
    tsvs: float
    thermal: float
    alignment: float
    strict_violation: float
    signals: Tuple[Tuple[str, float], ...]
    fits_outline: bool
    total: float
    reference: float
    strict_failures: int = 0  # Unfulfilled STRICT requirements

    @property
    def rejected(self) -> bool:
        return self.total == REJECT_COST

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "reference": self.reference,
            "area": self.area,
            "outline": self.outline,
            "wirelength": self.wirelength,
            "tsvs": self.tsvs,
            "thermal": self.thermal,
            "alignment": self.alignment,
            "strict_violation": self.strict_violation,
            "strict_failures": self.strict_failures,
            "signals": dict(self.signals),
            "fits_outline": self.fits_outline,
        }


@dataclass
class Evaluation:
    """A cost vector together with the analyses that produced it."""
    cost: CostVector
    alignments: List[AlignmentEvaluation]
    thermal: Optional[ThermalResult] = None
    tsv_islands: List[TSVIsland] = field(default_factory=list)


class CostModel:
    """Evaluates decoded layouts of one design.

    With cluster_tsvs, every evaluation also groups the nets' signal TSVs
    into islands (hotspot-guided when a thermal analysis ran), attaches them
    to the layout, and routes each net's die crossing through its island.
    """

    def __init__(self, design: Design, weights: Optional[CostWeights] = None,
                 analyzer: Optional[ThermalAnalyzer] = None,
                 signals: Optional[Dict[str, Signal]] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 cluster_tsvs: bool = False):
        self.design = design
        self.weights = weights or CostWeights()
        self.signals = dict(signals or {})
        self.diagnostics = diagnostics or Diagnostics()
        self.analyzer = analyzer
        if self.analyzer is None and self.weights.thermal > 0:
            self.analyzer = ThermalAnalyzer.for_design(
                design, trace=self.diagnostics.trace_thermal)
        self.cluster_tsvs = cluster_tsvs
        self.norm = Normalization()

    def evaluate(self, layout: Layout, fit_ratio: float = 0.0,
                 with_thermal: Optional[bool] = None) -> Evaluation:
        """Full cost of a layout.

        Args:
            layout: Decoded layout
            fit_ratio: Fraction of outline-fitting layouts among the
                previous temperature level's accepted candidates
            with_thermal: Force (or skip) the thermal analysis; by default it
                runs whenever the thermal weight is positive
        """
        if with_thermal is None:
            with_thermal = self.weights.thermal > 0

        thermal_result = None
        thermal = 0.0
        if with_thermal:
            if self.analyzer is None:
                self.analyzer = ThermalAnalyzer.for_design(
                    self.design, trace=self.diagnostics.trace_thermal)
            thermal_result = self.analyzer.analyze(layout, self.design)
            thermal = thermal_result.cost

        islands: List[TSVIsland] = []
        if self.cluster_tsvs:
            islands = self.cluster(layout, thermal_result)
            layout.attach_tsv_islands(islands)

        area, outline, fits = self.area_terms(layout)
        wirelength, tsvs = self.interconnect(layout, islands)

        alignments = [evaluate(req, layout) for req in self.design.alignments]
        flexible = 0.0
        strict = 0.0
        failures = 0
        for result in alignments:
            if result.fulfilled:
                continue
            if result.requirement.is_strict:
                failures += 1
                strict += result.cost
            else:
                flexible += result.cost
            if self.diagnostics.trace_alignment:
                logger.debug("Alignment %s unfulfilled, cost %.3f",
                             result.requirement.describe(), result.cost)

        signal_values = tuple((name, float(signal(layout))) for name, signal in self.signals.items())

        cost = CostVector(
            area=area,
            outline=outline,
            wirelength=wirelength,
            tsvs=tsvs,
            thermal=thermal,
            alignment=flexible,
            strict_violation=strict,
            signals=signal_values,
            fits_outline=fits,
            total=REJECT_COST,
            reference=REJECT_COST,
            strict_failures=failures,
        )
        return Evaluation(self.rescore(cost, fit_ratio), alignments, thermal_result, islands)

    def rescore(self, cost: CostVector, fit_ratio: float) -> CostVector:
        """Recompute total and reference from raw terms.

        Used after recalibrating the normalization or when the fit ratio
        changes between temperature levels.
        """
        if cost.strict_failures > 0:
            return replace(cost, total=REJECT_COST, reference=REJECT_COST)
        w = self.weights
        rest = (
            w.wirelength * cost.wirelength / self.norm.wirelength
            + w.tsvs * cost.tsvs / self.norm.tsvs
            + w.thermal * cost.thermal / self.norm.thermal
            + w.alignment * cost.alignment / self.norm.alignment
            + sum(w.signal_weight(name) * value for name, value in cost.signals)
        )
        return replace(
            cost,
            total=self.blend_area(cost.area, cost.outline, fit_ratio) + rest,
            reference=self.blend_area(cost.area, cost.outline, 1.0) + rest,
        )

    def blend_area(self, area: float, outline: float, fit_ratio: float) -> float:
        return 0.5 * self.weights.area * ((1.0 + fit_ratio) * area + (1.0 - fit_ratio) * outline)

    def area_terms(self, layout: Layout) -> Tuple[float, float, bool]:
        """(area ratio, outline aspect-ratio mismatch, fits outline).

        Both terms take the worst die. Empty dies count as a perfect fit.
        """
        design = self.design
        outline_area = design.outline_width * design.outline_height
        outline_ar = design.outline_aspect_ratio
        area = 0.0
        mismatch = 0.0
        fits = True
        for die in range(layout.dies):
            box = layout.die_bounding_box(die)
            if box is None:
                continue
            area = max(area, box.area / outline_area)
            mismatch = max(mismatch, (box.aspect_ratio - outline_ar) ** 2)
            if box.width > design.outline_width + 1e-9 or box.height > design.outline_height + 1e-9:
                fits = False
        return area, mismatch, fits

    def interconnect(self, layout: Layout,
                     islands: Sequence[TSVIsland] = ()) -> Tuple[float, float]:
        """Weighted HPWL and TSV count over all nets.

        Terminals count as pins on die 0. A die crossing assigned to a TSV
        island adds the island's centre to the crossing's bounding box.
        """
        via: Dict[Tuple[str, int], Point] = {}
        for island in islands:
            for net_id in island.nets:
                via[(net_id, island.layer)] = island.rect.center

        hpwl = 0.0
        tsvs = 0.0
        for net in self.design.nets:
            pins: Dict[int, List[Point]] = {}
            for block_id in net.blocks:
                placement = layout.placements[block_id]
                pins.setdefault(placement.die, []).append(placement.rect.center)
            for terminal_id in net.terminals:
                pins.setdefault(0, []).append(self.design.get_terminal(terminal_id).position)
            if sum(len(p) for p in pins.values()) < 2:
                continue

            dies = sorted(pins)
            if len(dies) == 1:
                hpwl += net.weight * _half_perimeter(pins[dies[0]])
                continue
            for lower, upper in zip(dies, dies[1:]):
                points = pins[lower] + pins[upper]
                points += [via[(net.id, layer)] for layer in range(lower, upper)
                           if (net.id, layer) in via]
                hpwl += net.weight * _half_perimeter(points)
                tsvs += upper - lower
        return hpwl, tsvs

    def cluster(self, layout: Layout,
                thermal: Optional[ThermalResult] = None) -> List[TSVIsland]:
        """Signal-TSV islands for a layout, guided by its hotspots if known."""
        hotspots = {}
        if thermal is not None and self.analyzer is not None:
            maps = thermal.die_maps
            for die in range(len(maps)):
                hotspots[die] = find_hotspots(maps[die], self.analyzer.bin_width,
                                              self.analyzer.bin_height, thermal.temp_offset)
        return cluster_signal_tsvs(net_segments(self.design, layout), hotspots,
                                   pitch=self.design.stack.tsv_pitch)

    def calibrate(self, samples: Iterable[CostVector]) -> Normalization:
        """Set normalization maxima from sampled cost vectors."""
        maxima = Normalization(0.0, 0.0, 0.0, 0.0)
        for cost in samples:
            maxima.wirelength = max(maxima.wirelength, cost.wirelength)
            maxima.tsvs = max(maxima.tsvs, cost.tsvs)
            maxima.thermal = max(maxima.thermal, cost.thermal)
            maxima.alignment = max(maxima.alignment, cost.alignment)
        # Terms that never showed up keep a neutral scale
        for name in ("wirelength", "tsvs", "thermal", "alignment"):
            if getattr(maxima, name) <= 0:
                setattr(maxima, name, 1.0)
        self.norm = maxima
        logger.debug("Cost normalization: %s", maxima)
        return maxima


def _half_perimeter(points: List[Point]) -> float:
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return (max(xs) - min(xs)) + (max(ys) - min(ys))
