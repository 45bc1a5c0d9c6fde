"""
Graph — which targets exist, what they depend on, and which get built.

Every target depends on exactly one node: the unmodified source unit.
There are no target-to-target edges, so targets can be built in any
order (or in separate processes) without coordination.  The report
target additionally owns one intermediate node, the early image.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from fpga_build.core.targets import TARGET_ORDER, TargetKind, artifact_name
from fpga_build.policy.profile import Profile

DEFAULT_AGGREGATE = "all"


class UnknownTargetError(ValueError):
    """A requested target name matches no target, group or artifact."""

    def __init__(self, name: str, known: Iterable[str]):
        self.name = name
        self.known = sorted(known)
        super().__init__(
            f"Unknown target '{name}'. Known targets: {', '.join(self.known)}"
        )


@dataclass(frozen=True)
class TargetNode:
    kind: TargetKind
    artifact: str
    group: str
    depends_on: Tuple[str, ...]
    in_default: bool
    intermediate: Optional[str] = None


# Convenience group names, one per target.
_GROUPS: Dict[TargetKind, str] = {
    TargetKind.EMULATOR: "fpga_emu",
    TargetKind.REPORT: "report",
    TargetKind.SIMULATOR: "fpga_sim",
    TargetKind.HARDWARE: "fpga",
}

# Real synthesis and cycle-accurate simulation take hours; they are only
# built on explicit request.
_EXCLUDED_FROM_DEFAULT: FrozenSet[TargetKind] = frozenset({
    TargetKind.SIMULATOR,
    TargetKind.HARDWARE,
})


class TargetGraph:
    """Declares the four targets and resolves target requests."""

    def __init__(self, profile: Optional[Profile] = None):
        if profile is None:
            profile = Profile.mvdr()
        self.profile = profile
        self.source = profile.source_file
        self.nodes: Dict[TargetKind, TargetNode] = {}
        for kind in TARGET_ORDER:
            artifact = artifact_name(profile.project_name, kind)
            self.nodes[kind] = TargetNode(
                kind=kind,
                artifact=artifact,
                group=_GROUPS[kind],
                depends_on=(self.source,),
                in_default=kind not in _EXCLUDED_FROM_DEFAULT,
                intermediate=artifact if kind == TargetKind.REPORT else None,
            )

        self._names: Dict[str, TargetKind] = {}
        for kind, node in self.nodes.items():
            self._names[kind.value] = kind
            self._names[node.group] = kind
            self._names[node.artifact] = kind

    @property
    def default_targets(self) -> List[TargetKind]:
        return [k for k in TARGET_ORDER if self.nodes[k].in_default]

    def dependencies(self, kind: TargetKind) -> Tuple[str, ...]:
        return self.nodes[kind].depends_on

    def lookup(self, name: str) -> TargetKind:
        kind = self._names.get(name.strip().lower())
        if kind is None:
            raise UnknownTargetError(name, list(self._names) + [DEFAULT_AGGREGATE])
        return kind

    def select(self, requested: Optional[Iterable[str]] = None) -> List[TargetKind]:
        """
        Resolve target names to the kinds to build.

        No names (or the "all" aggregate) selects the default set.
        Result is in graph order without duplicates.
        """
        names = [n for n in (requested or []) if n.strip()]
        chosen = set()
        if not names:
            chosen.update(self.default_targets)
        for name in names:
            if name.strip().lower() == DEFAULT_AGGREGATE:
                chosen.update(self.default_targets)
            else:
                chosen.add(self.lookup(name))
        return [k for k in TARGET_ORDER if k in chosen]


# =============================================================================
# Per-target lifecycle
# =============================================================================

class TargetState(str, Enum):
    NOT_REQUESTED = "NOT_REQUESTED"
    REQUESTED = "REQUESTED"
    COMPILING = "COMPILING"
    LINKING = "LINKING"
    COMPILING_LINKING = "COMPILING_LINKING"
    BUILT = "BUILT"
    FAILED = "FAILED"


class InvalidTransition(RuntimeError):
    pass


_TWO_STAGE: Dict[TargetState, FrozenSet[TargetState]] = {
    TargetState.NOT_REQUESTED: frozenset({TargetState.REQUESTED}),
    TargetState.REQUESTED: frozenset({TargetState.COMPILING}),
    TargetState.COMPILING: frozenset({TargetState.LINKING, TargetState.FAILED}),
    TargetState.LINKING: frozenset({TargetState.BUILT, TargetState.FAILED}),
}

# The report's single invocation compiles and emits the early image in one go.
_SINGLE_STAGE: Dict[TargetState, FrozenSet[TargetState]] = {
    TargetState.NOT_REQUESTED: frozenset({TargetState.REQUESTED}),
    TargetState.REQUESTED: frozenset({TargetState.COMPILING_LINKING}),
    TargetState.COMPILING_LINKING: frozenset({TargetState.BUILT, TargetState.FAILED}),
}


class TargetLifecycle:
    """Tracks one target through NOT_REQUESTED → ... → BUILT / FAILED."""

    def __init__(self, kind: TargetKind):
        self.kind = kind
        self.state = TargetState.NOT_REQUESTED
        self.history: List[TargetState] = [self.state]
        self._table = _SINGLE_STAGE if kind == TargetKind.REPORT else _TWO_STAGE

    def advance(self, new_state: TargetState) -> TargetState:
        allowed = self._table.get(self.state, frozenset())
        if new_state not in allowed:
            raise InvalidTransition(
                f"{self.kind.value}: cannot go from {self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)
        return new_state

    @property
    def finished(self) -> bool:
        return self.state in (TargetState.BUILT, TargetState.FAILED)
