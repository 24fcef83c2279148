#!/usr/bin/env python3
"""
Example: Classical Twin Designs

This example walks through the twin models supported by twinsem. For each
design we build the multi-group specification, print the model syntax that a
lavaan-compatible engine would receive, and simulate twin data from known
variance components.

Scenario: Height in Adolescent Twins
------------------------------------
Height is measured once in each twin of monozygotic (MZ) and dizygotic (DZ)
pairs. The phenotype P of twin i is decomposed as

    P_i = a*A_i + c*C_i + E_i

where:
  - A_i is the additive genetic factor, cor(A_1, A_2) = 1 (MZ) or 0.5 (DZ)
  - C_i is the shared environment, cor(C_1, C_2) = 1 in both zygosities
  - E_i is the unique environment with variance e2

Heritability is h2 = a^2 / (a^2 + c^2 + e2).
"""

import numpy as np
import pandas as pd

from twinsem import build, implied_moments, resolve_from_data, simulate_twins

# True parameters
true_values = {"a": np.sqrt(0.5), "c": np.sqrt(0.2), "e2": 0.3}
n_pairs = {"MZ": 600, "DZ": 800}

# ----------------------------------------------------------------------
# 1. ACE model
# ----------------------------------------------------------------------
ace = build("ACE", ["MZ", "DZ"])
print("ACE model syntax:")
print(ace.to_lavaan(defined=True))

data = simulate_twins(ace, true_values, n_pairs, seed=123)
print(data.head())

for label in ("MZ", "DZ"):
    pairs = data[data["zyg"] == label]
    observed = np.corrcoef(pairs["P1"], pairs["P2"])[0, 1]
    expected = implied_moments(ace, label, true_values).correlation[0, 1]
    print(f"{label}: twin correlation observed={observed:.3f}, implied={expected:.3f}")

# Falconer's estimates from the twin correlations
r_mz = data[data.zyg == "MZ"][["P1", "P2"]].corr().iloc[0, 1]
r_dz = data[data.zyg == "DZ"][["P1", "P2"]].corr().iloc[0, 1]
print(f"Falconer h2 = 2*(rMZ - rDZ) = {2 * (r_mz - r_dz):.3f} (true 0.5)")
print(f"Falconer c2 = 2*rDZ - rMZ  = {2 * r_dz - r_mz:.3f} (true 0.2)")

# ----------------------------------------------------------------------
# 2. Groups resolved from the data
# ----------------------------------------------------------------------
# Real data sets usually store zygosity as codes and are not sorted. The
# group order of the specification must follow the order in which groups
# first appear in the data, so resolve it from the data itself.
shuffled = data.sample(frac=1.0, random_state=1).reset_index(drop=True)
shuffled["zyg"] = shuffled["zyg"].map({"MZ": 1, "DZ": 2})
groups = resolve_from_data(shuffled, "zyg", codes={1: "MZ", 2: "DZ"})
print("Groups in data order:", [g.label for g in groups])
print(build("ACE", groups).to_lavaan())

# ----------------------------------------------------------------------
# 3. ADE and sibling interaction
# ----------------------------------------------------------------------
print(build("ADE", ["MZ", "DZ"]).to_lavaan())
acex = build("ACEX", ["MZ", "DZ"])
print(acex.to_lavaan())
for beta in (-0.2, 0.0, 0.2):
    values = dict(true_values, beta=beta)
    variances = [implied_moments(acex, g, values).covariance[0, 0] for g in ("MZ", "DZ")]
    print(f"beta={beta:+.1f}: phenotypic variance MZ={variances[0]:.3f}, DZ={variances[1]:.3f}")

# ----------------------------------------------------------------------
# 4. Ordinal and binary outcomes
# ----------------------------------------------------------------------
ordinal = build("ACE-ordinal", ["MZ", "DZ"], categories=3)
print(ordinal.to_lavaan())
ordinal_data = simulate_twins(ordinal, dict(true_values, mu=0.0, t2=0.8), n_pairs, seed=5)
print(pd.crosstab(ordinal_data["P1"], ordinal_data["zyg"]))

binary = build("ACE-binary", ["MZ", "DZ"])
print(binary.to_lavaan())

# ----------------------------------------------------------------------
# 5. Scalar sex limitation
# ----------------------------------------------------------------------
sexlim = build("ACE-sex-limited", ["MZM", "MZF", "DZM", "DZF", "DOS"])
print(sexlim.to_lavaan(defined=True))
print(sexlim.to_frame().query("group == 'DOS' and op == '=~'"))
