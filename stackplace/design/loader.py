"""
Design File Loader

Reads a floorplanning problem from YAML. A design file holds the die
stack, the blocks, terminals, nets and alignment requirements, plus an
optional `search:` section selecting a profile and overriding schedule
parameters or objective weights.

Example:
    name: demo
    dies: 2
    outline: {width: 10.0, height: 10.0}
    blocks:
      - {id: a, width: 2, height: 2, power_density: 1.0, die: 0}
      - {id: b, width: 3, height: 2}
    nets:
      - {id: n0, blocks: [a, b]}
    alignments:
      - {block_i: a, block_j: b, x: {type: OFFSET, value: 0}, handling: STRICT}
    search: {profile: fast, seed: 1, weights: {thermal: 0.0}}
"""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from ..config.profiles import get_profile
from ..placement.alignment import (
    AlignmentRequirement,
    AlignmentType,
    AxisRequirement,
    Handling,
)
from ..placement.annealing import SearchConfig
from ..placement.cost import CostWeights
from .abstraction import Block, Design, InvalidDesignError, Net, StackParameters, Terminal

logger = logging.getLogger(__name__)


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise InvalidDesignError([f"{where}: missing required field '{key}'"])
    return data[key]


def _enum(enum_cls, value: Any, where: str):
    try:
        return enum_cls[str(value).upper()]
    except KeyError:
        allowed = ", ".join(m.name for m in enum_cls)
        raise InvalidDesignError([f"{where}: invalid value '{value}' (expected one of {allowed})"])


def _known_fields(cls, data: Dict[str, Any], where: str) -> Dict[str, Any]:
    names = {f.name for f in dataclasses.fields(cls)}
    unknown = set(data) - names
    if unknown:
        raise InvalidDesignError([f"{where}: unknown field(s) {', '.join(sorted(unknown))}"])
    return dict(data)


def _axis(data: Optional[Dict[str, Any]], where: str) -> AxisRequirement:
    if data is None:
        return AxisRequirement()
    return AxisRequirement(
        _enum(AlignmentType, data.get("type", "UNDEF"), where),
        float(data.get("value", 0.0)),
    )


def parse_alignment(data: Dict[str, Any], index: int) -> AlignmentRequirement:
    where = f"alignment #{index}"
    return AlignmentRequirement(
        block_i=str(_require(data, "block_i", where)),
        block_j=str(_require(data, "block_j", where)),
        x=_axis(data.get("x"), f"{where} x"),
        y=_axis(data.get("y"), f"{where} y"),
        handling=_enum(Handling, data.get("handling", "FLEXIBLE"), where),
        signals=int(data.get("signals", 1)),
        tolerance=float(data.get("tolerance", 1e-6)),
        id=str(data.get("id", index)),
    )


def design_from_dict(data: Dict[str, Any]) -> Design:
    """Build a Design from parsed YAML/JSON data (not yet validated)."""
    if not isinstance(data, dict):
        raise InvalidDesignError(["design file must contain a mapping at top level"])

    outline = _require(data, "outline", "design")
    blocks = []
    for i, entry in enumerate(_require(data, "blocks", "design") or []):
        fields = _known_fields(Block, entry, f"block #{i}")
        _require(fields, "id", f"block #{i}")
        fields["id"] = str(fields["id"])
        blocks.append(Block(**fields))

    terminals = [
        Terminal(str(_require(t, "id", f"terminal #{i}")), float(t.get("x", 0.0)), float(t.get("y", 0.0)))
        for i, t in enumerate(data.get("terminals") or [])
    ]
    nets = [
        Net(
            id=str(_require(n, "id", f"net #{i}")),
            blocks=[str(b) for b in n.get("blocks", [])],
            terminals=[str(t) for t in n.get("terminals", [])],
            weight=float(n.get("weight", 1.0)),
        )
        for i, n in enumerate(data.get("nets") or [])
    ]
    alignments = [parse_alignment(a, i) for i, a in enumerate(data.get("alignments") or [])]
    stack = StackParameters(**_known_fields(StackParameters, data.get("stack") or {}, "stack"))

    return Design(
        name=str(data.get("name", "design")),
        dies=int(data.get("dies", 1)),
        outline_width=float(_require(outline, "width", "outline")),
        outline_height=float(_require(outline, "height", "outline")),
        blocks=blocks,
        nets=nets,
        terminals=terminals,
        alignments=alignments,
        stack=stack,
        require_populated_dies=bool(data.get("require_populated_dies", True)),
    )


def search_config_from_dict(data: Optional[Dict[str, Any]],
                            default_profile: str = "balanced",
                            profile: Optional[str] = None) -> SearchConfig:
    """Resolve the `search:` section into a SearchConfig.

    The base is `profile` if given, else the section's own profile, else
    default_profile. Every other key overrides the matching SearchConfig
    field, `weights` the matching CostWeights field.
    """
    data = dict(data or {})
    named = data.pop("profile", default_profile)
    config = get_profile(str(profile or named))

    weights = data.pop("weights", None)
    if weights:
        fields = _known_fields(CostWeights, weights, "search.weights")
        config.weights = dataclasses.replace(config.weights, **fields)

    fields = _known_fields(SearchConfig, data, "search")
    return dataclasses.replace(config, **fields)


def load_design(path: Union[str, Path],
                default_profile: str = "balanced",
                profile: Optional[str] = None) -> Tuple[Design, SearchConfig]:
    """
    Load a design file.

    Args:
        path: YAML design file
        default_profile: Profile used when the file does not name one
        profile: Profile used regardless of the file's choice

    Returns:
        (design, search config); the design is validated

    Raises:
        FileNotFoundError: If the file does not exist
        InvalidDesignError: If the file is malformed or the design invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Design file not found: {path}")

    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidDesignError([f"{path}: invalid YAML: {e}"]) from e

    design = design_from_dict(data)
    try:
        config = search_config_from_dict(data.get("search"), default_profile, profile)
    except (TypeError, ValueError) as e:
        if isinstance(e, InvalidDesignError):
            raise
        raise InvalidDesignError([f"search: {e}"]) from e
    design.validate()

    logger.debug("Loaded design '%s' from %s: %d blocks, %d nets",
                 design.name, path, len(design.blocks), len(design.nets))
    return design, config
