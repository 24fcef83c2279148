"""Tests for the group resolver."""

import numpy as np
import pandas as pd
import pytest

from twinsem import (
    DEFAULT_TABLE,
    DuplicateGroupError,
    Group,
    GroupDefinition,
    Sex,
    UnknownGroupError,
    build,
    implied_moments,
    resolve,
    resolve_from_data,
)
from twinsem.groups import observed_order


def test_resolve_keeps_first_appearance_order():
    groups = resolve(["DZ", "MZ", "DZ", "mz"])
    assert [g.label for g in groups] == ["DZ", "MZ"]
    assert [g.position for g in groups] == [0, 1]
    assert groups[0].coefficient("A") == 0.5


def test_resolve_unknown_label():
    with pytest.raises(UnknownGroupError):
        resolve(["MZ", "XX"])


def test_resolve_rejects_missing_labels():
    with pytest.raises(UnknownGroupError):
        resolve(["MZ", None])


def test_conflicting_metadata_raises():
    with pytest.raises(DuplicateGroupError, match="MZ"):
        resolve(["MZ", GroupDefinition("MZ", a=0.5, d=0.25)])


def test_repeated_definition_with_same_metadata_collapses():
    groups = resolve(["MZ", GroupDefinition("mz", a=1.0, d=1.0)])
    assert len(groups) == 1


def test_custom_definition_needs_no_table_entry():
    (group,) = resolve([GroupDefinition("HS", a=0.25, d=0.0)])
    assert group.label == "HS"
    assert group.coefficient("A") == 0.25
    assert group.sexes is None


def test_sex_roles():
    groups = {g.label: g for g in resolve(["MZM", "DZF", "DOS"])}
    assert groups["MZM"].sex_of(1) is Sex.MALE
    assert groups["DZF"].sex_of(2) is Sex.FEMALE
    assert groups["DOS"].sex_of(1) is Sex.MALE
    assert groups["DOS"].sex_of(2) is Sex.FEMALE
    with pytest.raises(ValueError):
        groups["DOS"].sex_of(3)


def test_resolve_from_data_uses_row_order_and_skips_missing():
    df = pd.DataFrame({"zyg": ["DZ", np.nan, "MZ", "DZ", "MZ"], "P1": range(5)})
    groups = resolve_from_data(df, "zyg")
    assert [g.label for g in groups] == ["DZ", "MZ"]


def test_resolve_from_data_maps_codes():
    df = pd.DataFrame({"zyg": [2, 1, 1, 2]})
    groups = resolve_from_data(df, "zyg", codes={1: "MZ", 2: "DZ"})
    assert [g.label for g in groups] == ["DZ", "MZ"]


def test_resolve_from_data_unmapped_code():
    df = pd.DataFrame({"zyg": [1, 3]})
    with pytest.raises(UnknownGroupError, match="3"):
        resolve_from_data(df, "zyg", codes={1: "MZ", 2: "DZ"})


def test_resolve_from_data_missing_column():
    with pytest.raises(ValueError, match="zygosity"):
        resolve_from_data(pd.DataFrame({"zyg": ["MZ"]}), "zygosity")


def test_observed_order_accepts_plain_sequences():
    assert observed_order(["mz", "MZ", "dz"]) == ["MZ", "DZ"]


def test_group_objects_are_normalized():
    groups = resolve([Group("mz", DEFAULT_TABLE.entry("MZ"), 0), "DZ"])
    assert [g.label for g in groups] == ["MZ", "DZ"]

    spec = build("ACE", [Group(" mz", DEFAULT_TABLE.entry("MZ"), 0), "DZ"])
    assert spec.group_labels == ("MZ", "DZ")
    moments = implied_moments(spec, "mz", {"a": 0.6, "c": 0.4, "e2": 0.48})
    assert moments.covariance[0, 1] == pytest.approx(0.52)
