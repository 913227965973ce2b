"""
Simulated-Annealing Search Driver

Explores floorplans by perturbing the packing sequences, decoding and
scoring every candidate, and applying the Metropolis criterion. The
temperature schedule adapts to the observed acceptance ratio: it cools
fast while many moves are accepted, slowly once acceptance drops below the
level seen during the greedy initial sampling, and reheats when acceptance
has collapsed.

Phases: INIT -> EXPLORE <-> COOL -> FREEZE. The result is always the best
solution found (never the final current state), and a run that passed
input validation always returns one.
"""

import logging
import math
import random
import statistics
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from ..design.abstraction import Design
from ..diagnostics import Diagnostics, Verbosity
from ..thermal.analyzer import ThermalAnalyzer, ThermalResult
from .alignment import AlignmentEvaluation
from .clustering import TSVIsland
from .cost import CostModel, CostVector, CostWeights, Evaluation, Signal
from .layout import Floorplan, Layout, LayoutOrchestrator

logger = logging.getLogger(__name__)

MIN_SAMPLES = 20


class SearchPhase(Enum):
    INIT = "init"
    EXPLORE = "explore"
    COOL = "cool"
    FREEZE = "freeze"


class StopReason(Enum):
    TEMPERATURE_FLOOR = "temperature_floor"
    FROZEN = "frozen"
    LEVEL_BUDGET = "level_budget"
    EVALUATION_BUDGET = "evaluation_budget"
    TIME_LIMIT = "time_limit"
    STOPPED = "stopped"


class StopSignal(Protocol):
    """Anything with is_set(), e.g. threading.Event."""

    def is_set(self) -> bool:
        ...


@dataclass
class SearchConfig:
    """Annealing schedule, budgets and objective weights."""

    # Inner steps per temperature level: loop_factor * n_blocks^(4/3)
    loop_factor: float = 1.0
    max_levels: int = 100
    max_evaluations: Optional[int] = None
    time_limit: Optional[float] = None  # seconds

    # Initial sampling and temperature
    sampling_factor: float = 1.0
    init_temp_factor: float = 1.0

    # Adaptive cooling; boundaries are multiples of the sampled acceptance ratio
    cooling_fast: float = 0.8
    cooling_slow: float = 0.95
    reheat_factor: float = 1.1
    fast_boundary: float = 1.0
    slow_boundary: float = 0.5

    # Freezing
    temperature_floor: float = 1e-6
    frozen_acceptance: float = 0.005
    frozen_levels: int = 5

    seed: Optional[int] = None
    randomize_initial: bool = False
    power_aware_initial: bool = False
    repair_budget: int = 500
    thermal_workers: int = 1
    cluster_signal_tsvs: bool = False

    operator_weights: Dict[str, float] = field(default_factory=dict)
    weights: CostWeights = field(default_factory=CostWeights)

    def inner_steps(self, block_count: int) -> int:
        return max(1, int(round(self.loop_factor * block_count ** (4.0 / 3.0))))

    def validate(self) -> None:
        if self.loop_factor <= 0:
            raise ValueError("loop_factor must be positive")
        if self.max_levels < 1:
            raise ValueError("max_levels must be at least 1")
        if not 0 < self.cooling_fast < 1 or not 0 < self.cooling_slow < 1:
            raise ValueError("cooling factors must lie in (0, 1)")
        if self.reheat_factor <= 0:
            raise ValueError("reheat_factor must be positive")
        if self.slow_boundary > self.fast_boundary:
            raise ValueError("slow_boundary must not exceed fast_boundary")


@dataclass(frozen=True)
class BestSolution:
    """Immutable snapshot of the best floorplan found so far."""
    floorplan: Floorplan
    cost: CostVector
    level: int


@dataclass
class LevelStats:
    """Statistics of one temperature level."""
    level: int
    temperature: float
    evaluated: int
    accepted: int
    acceptance_ratio: float
    fit_ratio: float
    avg_cost: float
    best_cost: Optional[float]
    new_best: bool


@dataclass
class SearchState:
    """Snapshot handed to the on_accept callback."""
    phase: SearchPhase
    level: int
    step: int
    temperature: float
    floorplan: Floorplan
    layout: Layout
    evaluation: Evaluation


@dataclass
class SearchResult:
    """Outcome of one annealing run."""
    floorplan: Floorplan
    layout: Layout
    cost: CostVector
    thermal: ThermalResult
    alignments: List[AlignmentEvaluation]
    history: List[LevelStats]
    stop_reason: StopReason
    evaluations: int
    fits_outline: bool
    runtime: float
    tsv_islands: List[TSVIsland] = field(default_factory=list)

    @property
    def levels(self) -> int:
        return len(self.history)

    def summary(self) -> str:
        lines = [
            f"Cost: {self.cost.reference:.4f} ({'fits' if self.fits_outline else 'exceeds'} outline)",
            f"Area ratio: {self.cost.area:.3f}  HPWL: {self.cost.wirelength:.1f}  "
            f"TSVs: {self.cost.tsvs:.0f}",
            f"Peak temperature: {self.thermal.peak:.2f} K",
            f"Alignment: {sum(1 for a in self.alignments if a.fulfilled)}/"
            f"{len(self.alignments)} fulfilled",
            f"Levels: {self.levels}, evaluations: {self.evaluations}, "
            f"stop: {self.stop_reason.value}, runtime: {self.runtime:.2f}s",
        ]
        if self.tsv_islands:
            lines.insert(2, f"Signal-TSV islands: {len(self.tsv_islands)}")
        return "\n".join(lines)

    def to_dict(self, include_maps: bool = False) -> Dict:
        return {
            "layout": self.layout.to_dict(),
            "cost": self.cost.to_dict(),
            "thermal": self.thermal.to_dict(include_maps=include_maps),
            "alignments": [a.to_dict() for a in self.alignments],
            "fits_outline": self.fits_outline,
            "stop_reason": self.stop_reason.value,
            "levels": self.levels,
            "evaluations": self.evaluations,
            "runtime": self.runtime,
            "tsv_islands": [island.to_dict() for island in self.tsv_islands],
        }


def accept_probability(delta: float, temperature: float) -> float:
    """Metropolis acceptance probability for a cost change at a temperature."""
    if delta <= 0:
        return 1.0
    if temperature <= 0 or math.isinf(delta):
        return 0.0
    return math.exp(-delta / temperature)


class AnnealingPlacer:
    """Simulated-annealing floorplanner for a 3D stack."""

    def __init__(self, design: Design, config: Optional[SearchConfig] = None,
                 signals: Optional[Dict[str, Signal]] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 initial: Optional[Floorplan] = None):
        self.design = design
        self.config = config or SearchConfig()
        self.diagnostics = diagnostics or Diagnostics()
        self.initial = initial
        self.signals = signals or {}

        self.phase = SearchPhase.INIT
        self.temperature = 0.0
        self.best: Optional[BestSolution] = None
        self.evaluations = 0
        self.history: List[LevelStats] = []

        self.orchestrator: Optional[LayoutOrchestrator] = None
        self.cost_model: Optional[CostModel] = None

    def _log(self, verbosity: Verbosity, msg: str, *args) -> None:
        if self.diagnostics.verbosity >= verbosity:
            logger.info(msg, *args)

    def _evaluate(self, floorplan: Floorplan, fit_ratio: float):
        layout = self.orchestrator.decode(floorplan)
        self.evaluations += 1
        return layout, self.cost_model.evaluate(layout, fit_ratio)

    def run(self, stop: Optional[StopSignal] = None,
            on_accept: Optional[Callable[[SearchState], None]] = None) -> SearchResult:
        """Run the search to completion.

        Args:
            stop: Optional external stop signal, checked between steps
            on_accept: Optional function called with every accepted candidate

        Returns:
            SearchResult holding the best solution found

        Raises:
            InvalidDesignError: if the design fails validation
            ValueError: if the search configuration is invalid
        """
        config = self.config
        started = time.monotonic()

        # INIT
        self.phase = SearchPhase.INIT
        self.design.validate()
        config.validate()
        rng = random.Random(config.seed)

        self.orchestrator = LayoutOrchestrator(self.design, config.operator_weights, self.diagnostics)
        analyzer = None
        if config.weights.thermal > 0 or config.thermal_workers > 1:
            analyzer = ThermalAnalyzer.for_design(self.design, workers=config.thermal_workers,
                                                  trace=self.diagnostics.trace_thermal)
        self.cost_model = CostModel(self.design, config.weights, analyzer, self.signals,
                                    self.diagnostics, cluster_tsvs=config.cluster_signal_tsvs)
        self.evaluations = 0
        self.history = []

        floorplan = self.initial
        if floorplan is None:
            floorplan = self.orchestrator.initial_floorplan(
                rng if config.randomize_initial else None,
                power_aware=config.power_aware_initial,
            )
        layout, current = self._evaluate(floorplan, 0.0)
        self._log(Verbosity.MINIMAL, "Floorplanning '%s': %d blocks, %d nets, %d alignments on %d dies",
                  self.design.name, len(self.design.blocks), len(self.design.nets),
                  len(self.design.alignments), self.design.dies)

        if current.cost.strict_failures > 0:
            floorplan, layout, current = self._repair(floorplan, layout, current, rng)

        inner_steps = config.inner_steps(len(self.design.blocks))
        floorplan, layout, current, acceptance_offset = self._sample(
            floorplan, layout, current, inner_steps, rng)
        self.orchestrator.commit(floorplan)

        # Best solution so far, and a fallback for runs that never fit the outline
        fallback = BestSolution(floorplan, current.cost, 0)
        self.best = fallback if current.cost.fits_outline and not current.cost.rejected else None

        # EXPLORE / COOL
        fit_ratio = 0.0
        level = 0
        frozen = 0
        stop_reason: Optional[StopReason] = None
        deadline = started + config.time_limit if config.time_limit else None

        while stop_reason is None:
            level += 1
            self.phase = SearchPhase.EXPLORE
            current = Evaluation(self.cost_model.rescore(current.cost, fit_ratio),
                                 current.alignments, current.thermal, current.tsv_islands)
            evaluated = accepted = fitting = 0
            cost_sum = 0.0
            new_best = False

            for step in range(inner_steps):
                if stop is not None and stop.is_set():
                    stop_reason = StopReason.STOPPED
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    stop_reason = StopReason.TIME_LIMIT
                    break
                if config.max_evaluations is not None and self.evaluations >= config.max_evaluations:
                    stop_reason = StopReason.EVALUATION_BUDGET
                    break

                _, candidate = self.orchestrator.propose(rng)
                if candidate is None:
                    continue
                cand_layout, cand = self._evaluate(candidate, fit_ratio)
                evaluated += 1

                if cand.cost.rejected:
                    accept = False
                elif current.cost.rejected:
                    accept = True
                else:
                    p = accept_probability(cand.cost.total - current.cost.total, self.temperature)
                    accept = p >= 1.0 or rng.random() < p
                if not accept:
                    continue

                self.orchestrator.commit(candidate)
                floorplan, layout, current = candidate, cand_layout, cand
                accepted += 1
                cost_sum += cand.cost.total

                if cand.cost.reference < fallback.cost.reference:
                    fallback = BestSolution(candidate, cand.cost, level)
                if cand.cost.fits_outline:
                    fitting += 1
                    if self.best is None or cand.cost.reference < self.best.cost.reference:
                        if self.best is None:
                            self._log(Verbosity.MEDIUM, "First layout fitting the outline at level %d", level)
                        self.best = BestSolution(candidate, cand.cost, level)
                        new_best = True

                if on_accept is not None:
                    on_accept(SearchState(self.phase, level, step, self.temperature,
                                          candidate, cand_layout, cand))

            ratio = accepted / evaluated if evaluated else 0.0
            if accepted:
                # Fixed for the whole next level
                fit_ratio = fitting / accepted
            stats = LevelStats(
                level=level,
                temperature=self.temperature,
                evaluated=evaluated,
                accepted=accepted,
                acceptance_ratio=ratio,
                fit_ratio=fit_ratio,
                avg_cost=cost_sum / accepted if accepted else current.cost.total,
                best_cost=self.best.cost.reference if self.best else None,
                new_best=new_best,
            )
            self.history.append(stats)
            self._log(Verbosity.MEDIUM,
                      "Level %d: T=%.4g accept=%.2f fit=%.2f avg=%.4f best=%s",
                      level, self.temperature, ratio, fit_ratio, stats.avg_cost,
                      f"{stats.best_cost:.4f}" if stats.best_cost is not None else "-")
            if stop_reason is not None:
                break

            self.phase = SearchPhase.COOL
            self.temperature = self._next_temperature(self.temperature, ratio, acceptance_offset,
                                                      level, self.best is not None)
            frozen = frozen + 1 if ratio <= config.frozen_acceptance else 0

            if self.temperature < config.temperature_floor:
                stop_reason = StopReason.TEMPERATURE_FLOOR
            elif frozen >= config.frozen_levels:
                stop_reason = StopReason.FROZEN
            elif level >= config.max_levels:
                stop_reason = StopReason.LEVEL_BUDGET

        # FREEZE
        self.phase = SearchPhase.FREEZE
        chosen = self.best or fallback
        if self.best is None:
            logger.warning("No layout fitting the %gx%g outline was found; returning the best "
                           "overall candidate", self.design.outline_width, self.design.outline_height)
        result = self._finalize(chosen, stop_reason, time.monotonic() - started)
        self._log(Verbosity.MINIMAL, "Floorplanning done (%s): cost %.4f after %d levels, %d evaluations",
                  stop_reason.value, result.cost.reference, len(self.history), self.evaluations)
        return result

    def _repair(self, floorplan: Floorplan, layout: Layout, current: Evaluation,
                rng: random.Random):
        """Greedily reduce unfulfilled STRICT requirements of the initial floorplan.

        Fewer unfulfilled requirements win; among equal counts, the smaller
        total mismatch.
        """
        budget = self.config.repair_budget
        while current.cost.strict_failures > 0 and budget > 0:
            budget -= 1
            _, candidate = self.orchestrator.propose(rng, floorplan)
            if candidate is None:
                continue
            cand_layout, cand = self._evaluate(candidate, 0.0)
            if ((cand.cost.strict_failures, cand.cost.strict_violation)
                    < (current.cost.strict_failures, current.cost.strict_violation)):
                floorplan, layout, current = candidate, cand_layout, cand

        if current.cost.strict_failures > 0:
            logger.warning("Initial floorplan still violates %d STRICT alignment(s) (mismatch %.3f) "
                           "after repair; search continues from it",
                           current.cost.strict_failures, current.cost.strict_violation)
        elif self.diagnostics.verbosity >= Verbosity.MAXIMUM:
            logger.info("Initial floorplan repaired to satisfy STRICT alignment")
        return floorplan, layout, current

    def _sample(self, floorplan: Floorplan, layout: Layout, current: Evaluation,
                inner_steps: int, rng: random.Random):
        """Greedy sampling at temperature zero.

        Calibrates the cost normalization, the initial temperature and the
        acceptance-ratio offset used by the cooling schedule.
        """
        config = self.config
        samples = max(MIN_SAMPLES, int(round(config.sampling_factor * inner_steps)))
        vectors = [current.cost]
        evaluated = accepted = 0

        for _ in range(samples):
            _, candidate = self.orchestrator.propose(rng, floorplan)
            if candidate is None:
                continue
            cand_layout, cand = self._evaluate(candidate, 0.0)
            evaluated += 1
            if cand.cost.rejected:
                continue
            vectors.append(cand.cost)
            if current.cost.rejected or cand.cost.total <= current.cost.total:
                floorplan, layout, current = candidate, cand_layout, cand
                accepted += 1

        self.cost_model.calibrate(v for v in vectors if not v.rejected)
        totals = [self.cost_model.rescore(v, 0.0).total for v in vectors if not v.rejected]
        current = Evaluation(self.cost_model.rescore(current.cost, 0.0),
                             current.alignments, current.thermal, current.tsv_islands)

        spread = statistics.pstdev(totals) if len(totals) > 1 else 0.0
        if not spread > 0:
            spread = 1e-2
        self.temperature = spread * config.init_temp_factor
        acceptance_offset = accepted / evaluated if evaluated else 0.0

        if self.diagnostics.verbosity >= Verbosity.MAXIMUM:
            logger.info("Initial sampling: %d evaluated, acceptance %.2f, T0=%.4g",
                        evaluated, acceptance_offset, self.temperature)
        return floorplan, layout, current, acceptance_offset

    def _next_temperature(self, temperature: float, ratio: float, offset: float,
                          level: int, found_fitting: bool) -> float:
        config = self.config
        if ratio > config.fast_boundary * offset:
            factor = config.cooling_fast
        elif ratio > config.slow_boundary * offset:
            factor = config.cooling_slow
        else:
            reheat = config.reheat_factor if found_fitting else config.reheat_factor ** 2
            factor = reheat * (1.0 - level / config.max_levels)
        return temperature * factor

    def _finalize(self, chosen: BestSolution, stop_reason: StopReason,
                  runtime: float) -> SearchResult:
        layout = self.orchestrator.decode(chosen.floorplan)
        final = self.cost_model.evaluate(layout, 1.0, with_thermal=True)
        return SearchResult(
            floorplan=chosen.floorplan,
            layout=layout,
            cost=final.cost,
            thermal=final.thermal,
            alignments=final.alignments,
            history=list(self.history),
            stop_reason=stop_reason,
            evaluations=self.evaluations,
            fits_outline=final.cost.fits_outline,
            runtime=runtime,
            tsv_islands=final.tsv_islands,
        )
