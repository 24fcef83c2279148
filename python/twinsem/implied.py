"""Model-implied moments of a specification for given parameter values.

Uses RAM notation: with ``A`` the directed paths, ``S`` the symmetric
(co)variances and ``F`` the filter selecting observed variables,

    Sigma = F (I - A)^-1 S (I - A)^-T F'
    mu    = F (I - A)^-1 m
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .errors import MissingParameterError, TwinModelError
from .groups import Group
from .specification import (
    Covariance,
    Fixed,
    Intercept,
    Loading,
    Regression,
    StructuralSpecification,
    Threshold,
    Value,
    Variance,
)

__all__ = ["ImpliedMoments", "resolve_value", "implied_moments"]


@dataclass(frozen=True, eq=False)
class ImpliedMoments:
    """Means, covariance and thresholds of the observed phenotypes in one group."""

    group: str
    variables: tuple
    mean: np.ndarray
    covariance: np.ndarray
    thresholds: Dict[str, np.ndarray]

    @property
    def correlation(self) -> np.ndarray:
        sd = np.sqrt(np.diag(self.covariance))
        return self.covariance / np.outer(sd, sd)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.covariance, index=list(self.variables), columns=list(self.variables))


def resolve_value(value: Value, values: Mapping[str, float]) -> float:
    if isinstance(value, Fixed):
        return value.value
    if value.label not in values:
        raise MissingParameterError(f"No value given for free parameter '{value.label}'")
    return float(values[value.label])


def implied_moments(
    spec: StructuralSpecification,
    group: Union[Group, str],
    values: Optional[Mapping[str, float]] = None,
) -> ImpliedMoments:
    """Implied moments of ``spec`` in ``group``.

    ``values`` must hold a number for every free label the group uses.
    """
    g = spec.group(group)
    values = dict(values or {})
    observed: List[str] = list(spec.variables)
    names = observed + [c.name for c in spec.latent_components]
    index = {name: i for i, name in enumerate(names)}
    n = len(names)

    a_mat = np.zeros((n, n))
    s_mat = np.zeros((n, n))
    m_vec = np.zeros(n)
    thresholds: Dict[str, List[Tuple[int, float]]] = {}

    for stmt, value in spec.for_group(g):
        x = resolve_value(value, values)
        if isinstance(stmt, Loading):
            a_mat[index[stmt.indicator], index[stmt.component.name]] = x
        elif isinstance(stmt, Regression):
            a_mat[index[stmt.target], index[stmt.predictor]] = x
        elif isinstance(stmt, (Variance, Covariance)):
            i, j = index[stmt.lhs], index[stmt.rhs]
            s_mat[i, j] = x
            s_mat[j, i] = x
        elif isinstance(stmt, Intercept):
            m_vec[index[stmt.variable]] = x
        elif isinstance(stmt, Threshold):
            thresholds.setdefault(stmt.variable, []).append((stmt.index, x))

    identity = np.eye(n)
    try:
        inverse = np.linalg.inv(identity - a_mat)
    except np.linalg.LinAlgError:
        raise TwinModelError(
            f"I - A is singular in group {g.label}; check the sibling interaction coefficient"
        ) from None
    f_mat = identity[: len(observed)]
    covariance = f_mat @ inverse @ s_mat @ inverse.T @ f_mat.T
    mean = f_mat @ inverse @ m_vec

    cuts = {}
    for variable, pairs in thresholds.items():
        ordered = np.array([x for _, x in sorted(pairs)])
        if np.any(np.diff(ordered) <= 0):
            raise TwinModelError(f"Thresholds of {variable} must be strictly increasing, got {ordered.tolist()}")
        cuts[variable] = ordered

    return ImpliedMoments(
        group=g.label,
        variables=tuple(observed),
        mean=mean,
        covariance=covariance,
        thresholds=cuts,
    )
