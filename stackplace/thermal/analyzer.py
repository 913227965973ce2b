"""
Thermal Analyzer

Fast temperature estimation by power blurring: block power is binned into
a grid per die, then convolved with Gaussian-like impulse-response masks
that model lateral spreading within a die and coupling between dies.

Power grids are zero-padded by the mask radius on every side and the
convolution runs over the padded grid with zero boundary values, so no heat
leaves the grid. The masks injected by one source die are normalized to a
total weight of one across all target dies; together this makes the
diffusion exactly power-conserving:

    sum(T - T_offset) / K == sum(P)

where K (K/W per bin) is the vertical thermal resistance of one die
divided by the bin area.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from scipy.ndimage import convolve1d

from ..design.abstraction import Design, StackParameters
from ..design.geometry import Rect

logger = logging.getLogger(__name__)

UM = 1e-6  # m per um


@dataclass
class ThermalMask:
    """Precomputed separable impulse responses.

    kernels[d] is the normalized 1D kernel (sums to 1) used for heat
    travelling d dies vertically; weights[i, j] is the fraction of die i's
    power that ends up on die j (each row sums to 1).
    """
    kernels: np.ndarray  # (dies, mask_dim)
    weights: np.ndarray  # (dies, dies)
    scale: float  # K/W per bin

    @classmethod
    def build(cls, dies: int, params: StackParameters, bin_area_m2: float) -> 'ThermalMask':
        center = params.mask_center
        offsets = np.arange(-center, center + 1, dtype=float)

        # Fit the lowest mask so that it decays to the boundary value at its edge
        if center > 0:
            base_scale = math.sqrt(math.log(params.impulse_factor / params.mask_boundary_value)
                                   / 2.0) / center
        else:
            base_scale = 0.0

        kernels = np.zeros((dies, params.mask_dim))
        mass = np.zeros(dies)
        for d in range(dies):
            amplitude = params.impulse_factor / (d + 1) ** params.impulse_scaling_exponent
            # Heat from farther dies arrives spread out more
            scale = base_scale / math.sqrt(1.0 + d)
            profile = math.sqrt(amplitude) * np.exp(-(offsets * scale) ** 2)
            total = profile.sum()
            kernels[d] = profile / total
            mass[d] = total ** 2

        weights = np.zeros((dies, dies))
        for i in range(dies):
            for j in range(dies):
                weights[i, j] = mass[abs(i - j)]
            weights[i] /= weights[i].sum()

        scale = params.vertical_resistance() / bin_area_m2
        return cls(kernels, weights, scale)


@dataclass
class ThermalResult:
    """Temperature estimate for one layout."""
    power: np.ndarray  # (dies, P, P) binned power in W, zero-padded
    temperature: np.ndarray  # (dies, P, P) in K, same shape
    pad: int
    temp_offset: float
    peak: float
    mean: float
    variance: float
    max_gradient: float
    hotspots: int
    cost: float

    @property
    def total_power(self) -> float:
        return float(self.power.sum())

    @property
    def die_maps(self) -> np.ndarray:
        """Temperature cropped to the die area, (dies, map_dim, map_dim)."""
        if self.pad == 0:
            return self.temperature
        return self.temperature[:, self.pad:-self.pad, self.pad:-self.pad]

    def to_dict(self, include_maps: bool = False) -> Dict:
        data = {
            "peak": self.peak,
            "mean": self.mean,
            "variance": self.variance,
            "max_gradient": self.max_gradient,
            "hotspots": self.hotspots,
            "cost": self.cost,
            "total_power": self.total_power,
        }
        if include_maps:
            data["maps"] = self.die_maps.round(3).tolist()
        return data


class ThermalAnalyzer:
    """Power binning plus mask convolution for one design's die stack."""

    def __init__(self, dies: int, outline_width: float, outline_height: float,
                 params: Optional[StackParameters] = None, workers: int = 1,
                 trace: bool = False):
        self.dies = dies
        self.params = params or StackParameters()
        self.outline = Rect(0.0, 0.0, outline_width, outline_height)
        self.workers = max(1, workers)
        self.trace = trace

        self.map_dim = self.params.map_dim
        self.pad = self.params.mask_center
        self.bin_width = outline_width / self.map_dim
        self.bin_height = outline_height / self.map_dim
        self.mask = ThermalMask.build(dies, self.params,
                                      self.bin_width * UM * self.bin_height * UM)

        if self.trace:
            logger.debug("Thermal masks: %d dies, %dx%d bins, %.3g K/W per bin",
                         dies, self.map_dim, self.map_dim, self.mask.scale)
            for d, kernel in enumerate(self.mask.kernels):
                logger.debug("  distance %d: %s", d, np.array2string(kernel, precision=4))

    @classmethod
    def for_design(cls, design: Design, workers: int = 1, trace: bool = False) -> 'ThermalAnalyzer':
        return cls(design.dies, design.outline_width, design.outline_height,
                   design.stack, workers=workers, trace=trace)

    @property
    def grid_shape(self):
        dim = self.params.padded_dim
        return (self.dies, dim, dim)

    def bin_power(self, blocks) -> np.ndarray:
        """Bin block power into the padded grid by area-weighted overlap.

        Args:
            blocks: Iterable of (die, rect, power_density) with density in
                uW/um^2. Parts of a block outside the outline are not binned.

        Returns:
            Array of shape grid_shape holding W per bin
        """
        grid = np.zeros(self.grid_shape)
        width, height = self.outline.width, self.outline.height
        for die, rect, density in blocks:
            if density <= 0:
                continue
            left, right = max(rect.x, 0.0), min(rect.right, width)
            bottom, top = max(rect.y, 0.0), min(rect.top, height)
            if right <= left or top <= bottom:
                continue

            c0 = int(math.floor(left / self.bin_width))
            c1 = min(self.map_dim, int(math.ceil(right / self.bin_width)))
            r0 = int(math.floor(bottom / self.bin_height))
            r1 = min(self.map_dim, int(math.ceil(top / self.bin_height)))

            x_edges = np.arange(c0, c1 + 1) * self.bin_width
            y_edges = np.arange(r0, r1 + 1) * self.bin_height
            ox = np.clip(np.minimum(x_edges[1:], right) - np.maximum(x_edges[:-1], left), 0.0, None)
            oy = np.clip(np.minimum(y_edges[1:], top) - np.maximum(y_edges[:-1], bottom), 0.0, None)

            p = self.pad
            grid[die, p + r0:p + r1, p + c0:p + c1] += np.outer(oy, ox) * density * UM
        return grid

    def diffuse(self, power: np.ndarray) -> np.ndarray:
        """Temperature grid for a fully populated power grid.

        Target dies are independent and are convolved concurrently when the
        analyzer has more than one worker; the power grid is only read.
        """
        if self.workers > 1 and self.dies > 1:
            with ThreadPoolExecutor(max_workers=min(self.workers, self.dies)) as executor:
                rises = list(executor.map(lambda j: self._diffuse_die(power, j), range(self.dies)))
        else:
            rises = [self._diffuse_die(power, j) for j in range(self.dies)]
        return self.params.temp_offset + self.mask.scale * np.stack(rises)

    def _diffuse_die(self, power: np.ndarray, target: int) -> np.ndarray:
        rise = np.zeros(power.shape[1:])
        for d in range(self.dies):
            sources = [i for i in (target - d, target + d) if 0 <= i < self.dies]
            if d == 0:
                sources = [target]
            combined = sum(self.mask.weights[i, target] * power[i] for i in sources)
            if not np.any(combined):
                continue
            kernel = self.mask.kernels[d]
            rise += convolve1d(convolve1d(combined, kernel, axis=0, mode="constant"),
                               kernel, axis=1, mode="constant")
        return rise

    def equivalent_power(self, temperature: np.ndarray) -> float:
        """Total power implied by a temperature grid (inverse of the linear kernel)."""
        return float((temperature - self.params.temp_offset).sum() / self.mask.scale)

    def analyze(self, layout, design: Design) -> ThermalResult:
        """Estimate the temperature of a decoded layout."""
        blocks = (
            (placement.die, placement.rect, design.get_block(block_id).power_density)
            for block_id, placement in layout.placements.items()
        )
        return self.analyze_power(self.bin_power(blocks))

    def analyze_power(self, power: np.ndarray) -> ThermalResult:
        offset = self.params.temp_offset
        if not np.any(power > 0):
            temperature = np.full(power.shape, offset)
        else:
            temperature = self.diffuse(power)
        result = self._summarize(power, temperature)

        if self.trace:
            logger.debug("Thermal: peak %.2f K, mean %.2f K, %d hotspot bins, cost %.4g",
                         result.peak, result.mean, result.hotspots, result.cost)
        return result

    def _summarize(self, power: np.ndarray, temperature: np.ndarray) -> ThermalResult:
        offset = self.params.temp_offset
        p = self.pad
        view = temperature[:, p:p + self.map_dim, p:p + self.map_dim]

        peak = float(view.max())
        mean = float(view.mean())
        variance = float(view.var())
        max_gradient = 0.0
        if self.map_dim > 1:
            for die_map in view:
                gy, gx = np.gradient(die_map)
                max_gradient = max(max_gradient, float(np.hypot(gx, gy).max()))
        hotspots = int((view > self.params.hotspot_threshold).sum())
        cost = (peak - offset) * (mean - offset)

        return ThermalResult(
            power=power,
            temperature=temperature,
            pad=p,
            temp_offset=offset,
            peak=peak,
            mean=mean,
            variance=variance,
            max_gradient=max_gradient,
            hotspots=hotspots,
            cost=max(cost, 0.0),
        )

    def layer_temperatures(self, result: ThermalResult) -> List[float]:
        """Peak temperature per die."""
        return [float(m.max()) for m in result.die_maps]
