"""
Reference External Cost Signals

The cost model accepts any named callable layout -> float as an extra
objective. Two simple estimators are provided:

- voltage_domain_spread: how scattered the blocks of each voltage domain
  are, so that domains can share supply islands
- routing_congestion: RUDY-style wire-density map per die, scored by the
  average density of the most congested 10% of bins relative to the mean

Both return values in [0, 1).
"""

from typing import Callable, Dict, List

import numpy as np

from ..design.abstraction import Design
from ..design.geometry import Rect, bounding_box
from .layout import Layout


def voltage_domain_spread(design: Design) -> Callable[[Layout], float]:
    """Signal penalizing voltage domains split across dies or spread out."""
    domains: Dict[str, List[str]] = {}
    for block in design.blocks:
        if block.voltage_domain:
            domains.setdefault(block.voltage_domain, []).append(block.id)
    domains = {name: ids for name, ids in domains.items() if len(ids) > 1}

    def signal(layout: Layout) -> float:
        if not domains:
            return 0.0
        total = 0.0
        for ids in domains.values():
            by_die: Dict[int, List[Rect]] = {}
            for block_id in ids:
                placement = layout.placements[block_id]
                by_die.setdefault(placement.die, []).append(placement.rect)
            # Extra dies used by the domain plus white space inside its boxes
            overhead = float(len(by_die) - 1)
            for rects in by_die.values():
                box = bounding_box(rects)
                used = sum(r.area for r in rects)
                overhead += box.area / used - 1.0
            total += overhead / (1.0 + overhead)
        return total / len(domains)

    return signal


def routing_congestion(design: Design, bins: int = 16,
                       top_fraction: float = 0.1) -> Callable[[Layout], float]:
    """Signal estimating routing hot spots with a RUDY density map."""
    bin_w = design.outline_width / bins
    bin_h = design.outline_height / bins
    edges_x = np.arange(bins + 1) * bin_w
    edges_y = np.arange(bins + 1) * bin_h

    def signal(layout: Layout) -> float:
        density = np.zeros((layout.dies, bins, bins))
        for net in design.nets:
            if len(net.blocks) < 2:
                continue
            by_die: Dict[int, List[Rect]] = {}
            for block_id in net.blocks:
                placement = layout.placements[block_id]
                by_die.setdefault(placement.die, []).append(placement.rect)
            for die, rects in by_die.items():
                centers = [r.center for r in rects]
                if len(centers) < 2:
                    continue
                lo_x, hi_x = min(p.x for p in centers), max(p.x for p in centers)
                lo_y, hi_y = min(p.y for p in centers), max(p.y for p in centers)
                # Degenerate boxes get one bin of thickness
                hi_x = max(hi_x, lo_x + bin_w)
                hi_y = max(hi_y, lo_y + bin_h)
                wire_density = net.weight * ((hi_x - lo_x) + (hi_y - lo_y)) / ((hi_x - lo_x) * (hi_y - lo_y))
                ox = np.clip(np.minimum(edges_x[1:], hi_x) - np.maximum(edges_x[:-1], lo_x), 0.0, None)
                oy = np.clip(np.minimum(edges_y[1:], hi_y) - np.maximum(edges_y[:-1], lo_y), 0.0, None)
                density[die] += wire_density * np.outer(oy, ox) / (bin_w * bin_h)

        values = density[density > 0]
        if values.size == 0:
            return 0.0
        count = max(1, int(round(values.size * top_fraction)))
        top = np.sort(values)[-count:].mean()
        ratio = top / values.mean() - 1.0
        return float(ratio / (1.0 + ratio))

    return signal


REFERENCE_SIGNALS = {
    "voltage": voltage_domain_spread,
    "congestion": routing_congestion,
}
