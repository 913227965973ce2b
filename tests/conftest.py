"""
Shared test fixtures for StackPlace tests.

Provides small designs, layouts and design files used across the unit
and integration tests.
"""

import pytest
from pathlib import Path

from stackplace.design.abstraction import Block, Design, Net, StackParameters, Terminal
from stackplace.design.geometry import Rect
from stackplace.placement.alignment import (
    AlignmentRequirement,
    AlignmentType,
    AxisRequirement,
    Handling,
)
from stackplace.placement.layout import Layout, Placement


# Small thermal grid keeps the analyzer fast in tests
SMALL_STACK = StackParameters(map_dim=16, mask_dim=5)


@pytest.fixture
def two_block_design() -> Design:
    """A 2x2 and a 3x2 block on a single die; minimum area is 10."""
    return Design(
        name="pair",
        dies=1,
        outline_width=10.0,
        outline_height=10.0,
        blocks=[
            Block("a", 2.0, 2.0, power_density=1.0),
            Block("b", 3.0, 2.0, power_density=0.5),
        ],
        nets=[Net("n0", blocks=["a", "b"])],
        stack=SMALL_STACK,
    )


@pytest.fixture
def stacked_design() -> Design:
    """Four blocks on two dies with a die hint for a and b."""
    return Design(
        name="stacked",
        dies=2,
        outline_width=20.0,
        outline_height=20.0,
        blocks=[
            Block("a", 4.0, 4.0, power_density=2.0, die=0),
            Block("b", 4.0, 4.0, power_density=1.0, die=1),
            Block("c", 6.0, 3.0, power_density=0.5),
            Block("d", 2.0, 5.0, power_density=0.5, soft=True, ar_min=0.5, ar_max=2.0),
        ],
        nets=[
            Net("n0", blocks=["a", "b"]),
            Net("n1", blocks=["a", "c", "d"], terminals=["io0"]),
        ],
        terminals=[Terminal("io0", 0.0, 10.0)],
        stack=SMALL_STACK,
    )


@pytest.fixture
def vertical_bus_design(stacked_design) -> Design:
    """stacked_design with a STRICT zero-offset bus between a and b."""
    stacked_design.alignments = [
        AlignmentRequirement(
            "a", "b",
            x=AxisRequirement(AlignmentType.OFFSET, 0.0),
            y=AxisRequirement(AlignmentType.OFFSET, 0.0),
            handling=Handling.STRICT,
            signals=32,
            id="bus",
        )
    ]
    return stacked_design


def make_layout(rects, dies: int = 1, islands=None) -> Layout:
    """Layout from {block_id: (die, Rect)} or {block_id: Rect} (die 0)."""
    placements = {}
    for block_id, value in rects.items():
        if isinstance(value, Rect):
            placements[block_id] = Placement(0, value)
        else:
            die, rect = value
            placements[block_id] = Placement(die, rect)
    return Layout(dies, placements, islands)


@pytest.fixture
def build_layout():
    """Factory fixture for hand-built layouts (see make_layout)."""
    return make_layout


DESIGN_YAML = """
name: demo
dies: 2
outline: {width: 20, height: 20}
blocks:
  - {id: cpu, width: 4, height: 4, power_density: 2.0, die: 0}
  - {id: cache, width: 4, height: 4, power_density: 0.5, die: 1}
  - {id: dsp, width: 6, height: 3, power_density: 1.0}
  - {id: io, width: 2, height: 5, soft: true, ar_min: 0.5, ar_max: 2.0}
terminals:
  - {id: pin0, x: 0, y: 10}
nets:
  - {id: n0, blocks: [cpu, cache]}
  - {id: n1, blocks: [cpu, dsp, io], terminals: [pin0], weight: 2.0}
alignments:
  - id: bus
    block_i: cpu
    block_j: cache
    x: {type: offset, value: 0}
    y: {type: offset, value: 0}
    handling: strict
    signals: 64
stack: {map_dim: 16, mask_dim: 5}
search:
  profile: fast
  seed: 3
  max_levels: 5
  weights: {thermal: 0.1}
"""


@pytest.fixture
def design_file(tmp_path) -> Path:
    """A valid design YAML file on disk."""
    path = tmp_path / "demo.yaml"
    path.write_text(DESIGN_YAML)
    return path
