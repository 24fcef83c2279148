"""Render a :class:`StructuralSpecification` as lavaan-style model syntax.

Multi-group modifiers are written as ``c(...)`` vectors in the
specification's group order, e.g. ``A1 ~~ c(1,0.5)*A2`` for groups
``[MZ, DZ]``. Engines that accept this syntax must be given the data with
groups in the same first-appearance order.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from .relatedness import ComponentKind
from .specification import (
    Fixed,
    Intercept,
    Loading,
    Regression,
    Statement,
    StructuralSpecification,
    Threshold,
    Value,
    Variance,
)

__all__ = ["to_lavaan", "modifier", "defined_parameters"]


def _format(value: Value) -> str:
    if isinstance(value, Fixed):
        return f"{value.value:g}"
    return value.label


def modifier(values: Sequence[Value]) -> str:
    """Format a per-group value vector as a lavaan modifier."""
    parts = [_format(v) for v in values]
    if len(parts) == 1:
        return parts[0]
    return f"c({','.join(parts)})"


def _section(spec: StructuralSpecification, stmt: Statement) -> str:
    if isinstance(stmt, Loading):
        return "loadings"
    if isinstance(stmt, Variance):
        return "latent variances" if stmt.variable not in spec.variables else "residual variances"
    if isinstance(stmt, Regression):
        return "sibling interaction"
    if isinstance(stmt, Intercept):
        return "means"
    if isinstance(stmt, Threshold):
        return "thresholds"
    left, right = stmt.lhs, stmt.rhs
    if left[0] == right[0]:
        return "twin covariances"
    return "orthogonal components"


def _line(spec: StructuralSpecification, stmt: Statement) -> str:
    mod = modifier(spec.vector(stmt))
    if isinstance(stmt, Intercept):
        return f"{stmt.variable} ~ {mod}*1"
    return f"{stmt.lhs} {stmt.op} {mod}*{stmt.rhs}"


def _variance_expression(params: Dict[ComponentKind, Value]) -> Dict[str, str]:
    terms: Dict[str, str] = {}
    for kind, value in params.items():
        text = _format(value)
        if kind is ComponentKind.E:
            terms[kind.value] = text
        elif isinstance(value, Fixed):
            terms[kind.value] = f"{value.value ** 2:g}"
        else:
            terms[kind.value] = f"{text}^2"
    return terms


def defined_parameters(spec: StructuralSpecification) -> List[str]:
    """``:=`` definitions of the standardized variance proportions."""
    lines: List[str] = []
    for tag, params in spec.variance_parameters().items():
        terms = _variance_expression(params)
        total = "+".join(terms.values())
        lines.append(f"V{tag} := {total}")
        for kind, term in terms.items():
            name = "h2" if kind == "A" else f"{kind.lower()}2"
            lines.append(f"{name}{tag}_std := {term}/({total})")
    return lines


def to_lavaan(spec: StructuralSpecification, defined: bool = False) -> str:
    """Return the model syntax for ``spec``.

    With ``defined=True`` the standardized variance proportions are appended
    as defined parameters (``h2_std := a^2/(a^2+c^2+e2)``).
    """
    lines = [
        f"# {spec.family.value} twin model",
        f"# groups: {', '.join(spec.group_labels)}",
    ]
    current = None
    thresholds: Dict[str, List[Threshold]] = {}
    for stmt in spec.statements:
        if isinstance(stmt, Threshold):
            thresholds.setdefault(stmt.variable, []).append(stmt)
            continue
        section = _section(spec, stmt)
        if section != current:
            lines.append("")
            lines.append(f"# {section}")
            current = section
        lines.append(_line(spec, stmt))

    if thresholds:
        lines.append("")
        lines.append("# thresholds")
        for variable, stmts in thresholds.items():
            stmts = sorted(stmts, key=lambda s: s.index)
            rhs = " + ".join(f"{modifier(spec.vector(s))}*{s.rhs}" for s in stmts)
            lines.append(f"{variable} | {rhs}")

    if defined:
        lines.append("")
        lines.append("# standardized variance components")
        lines.extend(defined_parameters(spec))

    return "\n".join(lines) + "\n"
