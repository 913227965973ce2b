"""
Signal-TSV Clustering

Groups the vertical segments of nets into TSV islands. A net crossing the
boundary between die d and die d + 1 needs signal TSVs there; its segment
is the bounding box of its pins on the two dies it connects. Segments are
merged greedily, largest first, as long as their boxes keep a common
region, and every cluster becomes one island placed in that region. A
cluster's seed is first pulled into the most critical thermal hotspot it
overlaps, so that the island's copper also helps spreading heat there.

Hotspots are found by grey-level blob detection on a die's temperature
map: bins are visited from hottest to coolest; a bin without hotter
neighbours seeds a hotspot, a bin whose hotter neighbours all belong to
one growing hotspot joins it, and a bin touching several hotspots becomes
background and stops them growing.

Example:
    hotspots = {die: find_hotspots(result.die_maps[die], bw, bh, offset)
                for die in range(dies)}
    islands = cluster_signal_tsvs(net_segments(design, layout), hotspots,
                                  pitch=design.stack.tsv_pitch)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..design.abstraction import Design
from ..design.geometry import Rect, bounding_box

logger = logging.getLogger(__name__)

BACKGROUND = -1

# Keeps hotspot scores in a readable range
SCORE_NORMALIZATION = 1.0e6

_NEIGHBOURS = ((-1, -1), (-1, 0), (-1, 1), (0, -1), (0, 1), (1, -1), (1, 0), (1, 1))


@dataclass
class Hotspot:
    """A connected region around a local temperature maximum."""
    id: int
    peak_temp: float
    bins: List[Tuple[int, int]] = field(default_factory=list)  # (row, col)
    base_temp: Optional[float] = None
    growing: bool = True
    gradient: float = 0.0
    score: float = 0.0
    bbox: Optional[Rect] = None


@dataclass(frozen=True)
class NetSegment:
    """Part of a net that crosses one die boundary."""
    net: str
    layer: int  # Boundary between die `layer` and die `layer + 1`
    bbox: Rect


@dataclass(frozen=True)
class TSVIsland:
    """A cluster of signal TSVs shared by several nets."""
    name: str
    layer: int
    nets: Tuple[str, ...]
    rect: Rect
    hotspot: Optional[int] = None

    @property
    def signals(self) -> int:
        return len(self.nets)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "layer": self.layer,
            "nets": list(self.nets),
            "x": self.rect.x,
            "y": self.rect.y,
            "width": self.rect.width,
            "height": self.rect.height,
            "hotspot": self.hotspot,
        }


def find_hotspots(temperature: np.ndarray, bin_width: float, bin_height: float,
                  temp_offset: float) -> List[Hotspot]:
    """Hotspot regions of one die's temperature map.

    Args:
        temperature: (rows, cols) map in K; rows run along y
        bin_width: Bin width in um
        bin_height: Bin height in um
        temp_offset: Ambient temperature; bins at ambient are ignored

    Returns:
        Hotspots ordered by score (peak^2 x gradient x size), highest first
    """
    rows, cols = temperature.shape
    labels = np.full((rows, cols), BACKGROUND, dtype=int)
    hotspots: List[Hotspot] = []

    flat = temperature.ravel()
    for index in np.argsort(-flat, kind="stable"):
        temp = float(flat[index])
        if temp - temp_offset <= 1e-9:
            # Descending order: everything left is at ambient
            break
        r, c = divmod(int(index), cols)

        hotter = set()
        for dr, dc in _NEIGHBOURS:
            nr, nc = r + dr, c + dc
            if 0 <= nr < rows and 0 <= nc < cols and temperature[nr, nc] > temp:
                hotter.add(int(labels[nr, nc]))

        if not hotter:
            labels[r, c] = len(hotspots)
            hotspots.append(Hotspot(len(hotspots), temp, [(r, c)]))
        elif BACKGROUND in hotter:
            labels[r, c] = BACKGROUND
        elif len(hotter) == 1:
            spot = hotspots[hotter.pop()]
            if spot.growing:
                spot.bins.append((r, c))
                labels[r, c] = spot.id
        else:
            # Saddle between hotspots: their common base level
            for spot_id in hotter:
                spot = hotspots[spot_id]
                if spot.growing:
                    spot.growing = False
                    spot.base_temp = temp

    for spot in hotspots:
        spot.growing = False
        if spot.base_temp is None:
            spot.base_temp = min(float(temperature[r, c]) for r, c in spot.bins)
        spot.gradient = spot.peak_temp - spot.base_temp
        spot.score = spot.gradient * spot.peak_temp ** 2 * len(spot.bins) / SCORE_NORMALIZATION
        spot.bbox = bounding_box(
            Rect(c * bin_width, r * bin_height, bin_width, bin_height) for r, c in spot.bins
        )

    hotspots.sort(key=lambda s: s.score, reverse=True)
    return hotspots


def net_segments(design: Design, layout) -> Dict[int, List[NetSegment]]:
    """Die-boundary segments of all nets, keyed by boundary layer.

    Between two consecutive dies holding pins of a net, the segment is the
    bounding box of those pins; a net skipping dies gets that segment on
    every boundary in between. Terminals are pins on die 0.
    """
    segments: Dict[int, List[NetSegment]] = {}
    for net in design.nets:
        pins: Dict[int, List[Rect]] = {}
        for block_id in net.blocks:
            placement = layout.placements[block_id]
            pins.setdefault(placement.die, []).append(placement.rect)
        for terminal_id in net.terminals:
            pins.setdefault(0, []).append(design.get_terminal(terminal_id).rect)

        dies = sorted(pins)
        for lower, upper in zip(dies, dies[1:]):
            bbox = bounding_box(pins[lower] + pins[upper])
            for layer in range(lower, upper):
                segments.setdefault(layer, []).append(NetSegment(net.id, layer, bbox))
    return segments


def island_rect(region: Rect, signals: int, pitch: float) -> Rect:
    """Square TSV array for a number of signals, centred on a region."""
    side = math.sqrt(signals) * pitch
    center = region.center
    return Rect(center.x - side / 2, center.y - side / 2, side, side)


def _shift_clear(rect: Rect, placed: Sequence[Rect]) -> Rect:
    """Shift right past previously placed islands until nothing overlaps."""
    for _ in range(len(placed)):
        blocker = next((p for p in placed if p.intersects(rect)), None)
        if blocker is None:
            break
        rect = Rect(blocker.right, rect.y, rect.width, rect.height)
    return rect


def cluster_signal_tsvs(segments: Mapping[int, List[NetSegment]],
                        hotspots: Optional[Mapping[int, List[Hotspot]]] = None,
                        pitch: float = 10.0) -> List[TSVIsland]:
    """Cluster net segments into TSV islands, boundary by boundary.

    Args:
        segments: Segments per boundary layer (see net_segments)
        hotspots: Score-ordered hotspots per die; a boundary uses the
            hotspots of the die below it
        pitch: TSV pitch in um, sets the island size

    Returns:
        Islands in layer order; islands on one layer never overlap
    """
    hotspots = hotspots or {}
    islands: List[TSVIsland] = []

    for layer in sorted(segments):
        pending = sorted(segments[layer], key=lambda s: s.bbox.area, reverse=True)
        placed: List[Rect] = []

        while pending:
            seed = pending.pop(0)
            region = seed.bbox
            hotspot_id = None
            for spot in hotspots.get(layer, []):
                common = region.intersection(spot.bbox)
                if common is not None:
                    region, hotspot_id = common, spot.id
                    break

            members = [seed.net]
            remaining = []
            for segment in pending:
                common = region.intersection(segment.bbox)
                if common is None:
                    remaining.append(segment)
                else:
                    region = common
                    members.append(segment.net)
            pending = remaining

            rect = _shift_clear(island_rect(region, len(members), pitch), placed)
            placed.append(rect)
            islands.append(TSVIsland(f"tsv{layer}_{len(placed) - 1}", layer,
                                     tuple(members), rect, hotspot_id))

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Layer %d: %d segments in %d TSV islands",
                         layer, len(segments[layer]), len(placed))
    return islands
