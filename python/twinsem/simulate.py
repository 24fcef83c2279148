"""Simulate twin pair data from a specification."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Union

import numpy as np
import pandas as pd

from .errors import TwinModelError, UnknownGroupError
from .implied import implied_moments
from .relatedness import normalize_label
from .specification import StructuralSpecification

__all__ = ["simulate_twins"]

logger = logging.getLogger(__name__)


def _pair_counts(spec: StructuralSpecification, n_pairs) -> Optional[Dict[str, int]]:
    if not isinstance(n_pairs, Mapping):
        return None
    counts = {normalize_label(label): int(size) for label, size in n_pairs.items()}
    unknown = sorted(set(counts) - set(spec.group_labels))
    if unknown:
        raise UnknownGroupError(
            f"pair counts given for groups {unknown} that are not in this specification {list(spec.group_labels)}"
        )
    return counts


def simulate_twins(
    spec: StructuralSpecification,
    values: Mapping[str, float],
    n_pairs: Union[int, Mapping[str, int]],
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    group_column: str = "zyg",
) -> pd.DataFrame:
    """Draw twin pairs from the model implied by ``spec`` and ``values``.

    Parameters
    ----------
    spec:
        The structural specification.
    values:
        A value for every free parameter label (e.g. ``{"a": 0.7, "c": 0.4,
        "e2": 0.5}``).
    n_pairs:
        Pairs per group, either one count for all groups or a mapping from
        group label to count. Groups missing from the mapping get no pairs;
        a label that is not one of the specification's groups raises
        :class:`UnknownGroupError`.
    seed, rng:
        Seed for a fresh ``numpy.random.Generator``, or a generator to use.
    group_column:
        Name of the column holding the group label.

    Returns
    -------
    pandas.DataFrame
        One row per pair with a ``pair`` id, the two phenotypes and the group
        column, groups stacked in the specification's order. Ordinal families
        yield integer categories ``0..k-1`` instead of continuous scores.
    """
    if group_column in spec.variables or group_column == "pair":
        raise TwinModelError(f"group column '{group_column}' clashes with a data column")
    if rng is None:
        rng = np.random.default_rng(seed)

    counts = _pair_counts(spec, n_pairs)
    frames = []
    offset = 0
    for group in spec.groups:
        if counts is not None:
            size = counts.get(group.label, 0)
        else:
            size = int(n_pairs)
        if size < 0:
            raise ValueError(f"pair count for {group.label} must be non-negative, got {size}")
        if size == 0:
            continue

        moments = implied_moments(spec, group, values)
        draws = rng.multivariate_normal(moments.mean, moments.covariance, size=size)
        frame = pd.DataFrame(draws, columns=list(moments.variables))
        for variable, cuts in moments.thresholds.items():
            frame[variable] = np.searchsorted(cuts, frame[variable].to_numpy()).astype(int)
        frame.insert(0, "pair", np.arange(offset, offset + size))
        frame[group_column] = group.label
        frames.append(frame)
        offset += size
        logger.debug("Simulated %d %s pairs", size, group.label)

    if not frames:
        return pd.DataFrame(columns=["pair", *spec.variables, group_column])
    return pd.concat(frames, ignore_index=True)
