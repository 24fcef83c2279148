"""Typed statements and the immutable :class:`StructuralSpecification`.

A specification is the request object handed to a fitting engine. Each
statement carries one value per group, keyed by group label rather than by
position, so reordering the groups never detaches a coefficient from its
group.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import pandas as pd

from .errors import GroupOrderMismatchError, TwinModelError, UnknownGroupError
from .groups import Group
from .relatedness import ComponentKind, normalize_label

if TYPE_CHECKING:  # pragma: no cover
    from .families import ModelFamily

__all__ = [
    "Fixed",
    "Free",
    "Value",
    "GroupValues",
    "LatentComponent",
    "StatementKind",
    "Loading",
    "Variance",
    "Covariance",
    "Regression",
    "Threshold",
    "Intercept",
    "Statement",
    "StructuralSpecification",
]


@dataclass(frozen=True)
class Fixed:
    """A parameter fixed to a numeric constant."""

    value: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))

    def __str__(self) -> str:
        return f"{self.value:g}"


@dataclass(frozen=True)
class Free:
    """A free parameter; equal labels are constrained equal."""

    label: str

    def __post_init__(self) -> None:
        if not self.label or not self.label.strip():
            raise TwinModelError("free parameter labels cannot be empty")

    def __str__(self) -> str:
        return self.label


Value = Union[Fixed, Free]


class GroupValues(Mapping[str, Value]):
    """Per-group parameter values keyed by group label.

    Equality ignores insertion order: two mappings are equal when every group
    carries the same value.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Union[Mapping[str, Value], Iterable[Tuple[str, Value]]]) -> None:
        pairs = items.items() if isinstance(items, Mapping) else items
        data: Dict[str, Value] = {}
        for label, value in pairs:
            if not isinstance(value, (Fixed, Free)):
                raise TwinModelError(f"group value must be Fixed or Free, got {value!r}")
            data[normalize_label(getattr(label, "label", label))] = value
        self._items = tuple(data.items())

    @classmethod
    def uniform(cls, groups: Sequence[Group], value: Value) -> "GroupValues":
        return cls((g.label, value) for g in groups)

    def __getitem__(self, key: object) -> Value:
        label = normalize_label(getattr(key, "label", key))
        for name, value in self._items:
            if name == label:
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroupValues):
            return NotImplemented
        return dict(self._items) == dict(other._items)

    def __hash__(self) -> int:
        return hash(frozenset(self._items))

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v}" for k, v in self._items)
        return f"GroupValues({inner})"

    @property
    def is_uniform(self) -> bool:
        return len({v for _, v in self._items}) <= 1


@dataclass(frozen=True)
class LatentComponent:
    """One variance source for one twin of a pair."""

    kind: ComponentKind
    twin: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ComponentKind.parse(self.kind))
        if self.twin not in (1, 2):
            raise TwinModelError(f"twin index must be 1 or 2, got {self.twin}")

    @property
    def name(self) -> str:
        return f"{self.kind.value}{self.twin}"

    def __str__(self) -> str:
        return self.name


class StatementKind(str, Enum):
    LOADING = "loading"
    VARIANCE = "variance"
    COVARIANCE = "covariance"
    REGRESSION = "regression"
    THRESHOLD = "threshold"
    INTERCEPT = "intercept"


class _StatementMixin:
    """Common accessors; subclasses set ``kind`` and ``op``."""

    kind: StatementKind
    op: str
    values: GroupValues

    @property
    def lhs(self) -> str:
        raise NotImplementedError

    @property
    def rhs(self) -> str:
        raise NotImplementedError

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.lhs, self.op, self.rhs)

    def value(self, group: Union[Group, str]) -> Value:
        return self.values[group]


@dataclass(frozen=True)
class Loading(_StatementMixin):
    component: LatentComponent
    indicator: str
    values: GroupValues

    kind = StatementKind.LOADING
    op = "=~"

    @property
    def lhs(self) -> str:
        return self.component.name

    @property
    def rhs(self) -> str:
        return self.indicator


@dataclass(frozen=True)
class Variance(_StatementMixin):
    variable: str
    values: GroupValues

    kind = StatementKind.VARIANCE
    op = "~~"

    @property
    def lhs(self) -> str:
        return self.variable

    @property
    def rhs(self) -> str:
        return self.variable


@dataclass(frozen=True)
class Covariance(_StatementMixin):
    left: str
    right: str
    values: GroupValues

    kind = StatementKind.COVARIANCE
    op = "~~"

    @property
    def lhs(self) -> str:
        return self.left

    @property
    def rhs(self) -> str:
        return self.right


@dataclass(frozen=True)
class Regression(_StatementMixin):
    target: str
    predictor: str
    values: GroupValues

    kind = StatementKind.REGRESSION
    op = "~"

    @property
    def lhs(self) -> str:
        return self.target

    @property
    def rhs(self) -> str:
        return self.predictor


@dataclass(frozen=True)
class Threshold(_StatementMixin):
    variable: str
    index: int
    values: GroupValues

    kind = StatementKind.THRESHOLD
    op = "|"

    @property
    def lhs(self) -> str:
        return self.variable

    @property
    def rhs(self) -> str:
        return f"t{self.index}"


@dataclass(frozen=True)
class Intercept(_StatementMixin):
    variable: str
    values: GroupValues

    kind = StatementKind.INTERCEPT
    op = "~1"

    @property
    def lhs(self) -> str:
        return self.variable

    @property
    def rhs(self) -> str:
        return ""


Statement = Union[Loading, Variance, Covariance, Regression, Threshold, Intercept]


@dataclass(frozen=True)
class StructuralSpecification:
    """Fully resolved twin model, ready for a fitting engine."""

    family: "ModelFamily"
    groups: Tuple[Group, ...]
    statements: Tuple[Statement, ...]
    variables: Tuple[str, str]
    categories: Optional[int] = None
    _index: Dict[Tuple[str, str, str], Statement] = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        index: Dict[Tuple[str, str, str], Statement] = {}
        for stmt in self.statements:
            key = _canonical_key(stmt.lhs, stmt.op, stmt.rhs)
            if key in index:
                raise TwinModelError(f"duplicate statement: {' '.join(stmt.key)}")
            index[key] = stmt
        object.__setattr__(self, "_index", index)

    # ------------------------------------------------------------------
    # Group access
    # ------------------------------------------------------------------
    @property
    def group_labels(self) -> Tuple[str, ...]:
        return tuple(g.label for g in self.groups)

    def group(self, label: Union[Group, str]) -> Group:
        key = normalize_label(getattr(label, "label", label))
        for g in self.groups:
            if g.label == key:
                return g
        raise UnknownGroupError(f"Group '{key}' is not part of this specification")

    def reorder(self, labels: Sequence[Union[Group, str]]) -> "StructuralSpecification":
        """Return the same specification with groups in ``labels`` order.

        Only the group order changes; every statement keeps the value it
        carries for each group.
        """
        wanted = [normalize_label(getattr(label, "label", label)) for label in labels]
        if len(set(wanted)) != len(wanted) or set(wanted) != set(self.group_labels):
            raise GroupOrderMismatchError(
                f"Cannot reorder groups {list(self.group_labels)} to {wanted}: group sets differ"
            )
        groups = tuple(replace(self.group(label), position=i) for i, label in enumerate(wanted))
        return replace(self, groups=groups)

    # ------------------------------------------------------------------
    # Statement access
    # ------------------------------------------------------------------
    def find(self, lhs: str, op: str, rhs: str = "") -> Statement:
        try:
            return self._index[_canonical_key(lhs, op, rhs)]
        except KeyError:
            raise KeyError(f"no statement '{lhs} {op} {rhs}'".rstrip()) from None

    def loading(self, component: str, indicator: str) -> Loading:
        return self.find(component, "=~", indicator)

    def variance(self, variable: str) -> Variance:
        return self.find(variable, "~~", variable)

    def covariance(self, left: str, right: str) -> Covariance:
        return self.find(left, "~~", right)

    def regression(self, target: str, predictor: str) -> Regression:
        return self.find(target, "~", predictor)

    def intercept(self, variable: str) -> Intercept:
        return self.find(variable, "~1")

    def thresholds(self, variable: str) -> List[Threshold]:
        found = [s for s in self.statements if isinstance(s, Threshold) and s.variable == variable]
        return sorted(found, key=lambda s: s.index)

    def of_kind(self, kind: Union[StatementKind, str]) -> List[Statement]:
        kind = StatementKind(kind)
        return [s for s in self.statements if s.kind == kind]

    def vector(self, statement: Statement) -> List[Value]:
        """Values of ``statement`` in this specification's group order."""
        return [statement.values[g.label] for g in self.groups]

    def constraint_vector(self, statement: Statement) -> List[Union[float, str]]:
        """Like :meth:`vector` with fixed values as floats and free ones as labels."""
        return [v.value if isinstance(v, Fixed) else v.label for v in self.vector(statement)]

    @property
    def latent_components(self) -> Tuple[LatentComponent, ...]:
        seen: Dict[str, LatentComponent] = {}
        for stmt in self.statements:
            if isinstance(stmt, Loading):
                seen.setdefault(stmt.component.name, stmt.component)
        return tuple(seen.values())

    @property
    def free_parameters(self) -> Tuple[str, ...]:
        """Distinct free labels in statement order, then group order."""
        labels: Dict[str, None] = {}
        for stmt in self.statements:
            for value in self.vector(stmt):
                if isinstance(value, Free):
                    labels.setdefault(value.label, None)
        return tuple(labels)

    def variance_parameters(self) -> Dict[str, Dict[ComponentKind, Value]]:
        """Values behind each phenotype's variance, by twin sex.

        Each entry maps A/C/D to the component's loading and E to the residual
        variance. Keys are ``"m"`` and ``"f"`` when the values differ by sex,
        otherwise a single ``""`` entry.
        """
        by_sex: Dict[str, Dict[ComponentKind, Value]] = {}
        for g in self.groups:
            for twin in (1, 2):
                sex = g.sex_of(twin)
                tag = "" if sex is None else sex.value.lower()
                if tag in by_sex:
                    continue
                indicator = self.variables[twin - 1]
                entry: Dict[ComponentKind, Value] = {}
                for comp in self.latent_components:
                    if comp.twin == twin:
                        entry[comp.kind] = self.loading(comp.name, indicator).values[g.label]
                entry[ComponentKind.E] = self.variance(indicator).values[g.label]
                by_sex[tag] = entry
        distinct = list(by_sex.values())
        if all(entry == distinct[0] for entry in distinct):
            return {"": distinct[0]}
        return by_sex

    def for_group(self, group: Union[Group, str]) -> List[Tuple[Statement, Value]]:
        """Single-group view: every statement with its value in ``group``."""
        g = self.group(group)
        return [(stmt, stmt.values[g.label]) for stmt in self.statements]

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def to_frame(self) -> pd.DataFrame:
        """Parameter table with one row per statement and group."""
        rows = []
        for stmt in self.statements:
            for g in self.groups:
                value = stmt.values[g.label]
                rows.append(
                    {
                        "lhs": stmt.lhs,
                        "op": stmt.op,
                        "rhs": stmt.rhs,
                        "group": g.label,
                        "label": value.label if isinstance(value, Free) else "",
                        "free": isinstance(value, Free),
                        "value": value.value if isinstance(value, Fixed) else float("nan"),
                    }
                )
        columns = ["lhs", "op", "rhs", "group", "label", "free", "value"]
        return pd.DataFrame(rows, columns=columns)

    def to_lavaan(self, defined: bool = False) -> str:
        """Render lavaan-style multi-group model syntax."""
        from .syntax import to_lavaan

        return to_lavaan(self, defined=defined)

    def __str__(self) -> str:
        return self.to_lavaan()


def _canonical_key(lhs: str, op: str, rhs: str) -> Tuple[str, str, str]:
    if op == "~~":
        a, b = sorted((lhs, rhs))
        return (a, op, b)
    return (lhs, op, rhs)
