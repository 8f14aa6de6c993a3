from __future__ import annotations

import pytest

from vprep.errors import ConfigError
from vprep.features import PageSize, feature_env_var, features_from_env, select_page_size


def test_select_single_page_size() -> None:
    assert select_page_size(["numa-aware", "256k-pages"]) is PageSize.P256K
    assert PageSize.P256K.define == "TCMALLOC_INTERNAL_256K_PAGES"


def test_select_page_size_requires_one() -> None:
    with pytest.raises(ConfigError) as excinfo:
        select_page_size(["numa-aware"])

    assert "One page size" in str(excinfo.value)


def test_select_page_size_rejects_several() -> None:
    with pytest.raises(ConfigError) as excinfo:
        select_page_size(["8k-pages", "small-but-slow"])

    assert excinfo.value.details["page_sizes"] == ["8k-pages", "small-but-slow"]


def test_select_page_size_rejects_unknown() -> None:
    with pytest.raises(ConfigError):
        select_page_size(["8k-pages", "huge-pages"])


def test_feature_env_var_naming() -> None:
    assert feature_env_var("8k-pages") == "CARGO_FEATURE_8K_PAGES"
    assert PageSize.SMALL.env_var == "CARGO_FEATURE_SMALL_BUT_SLOW"


def test_features_from_env() -> None:
    env = {"CARGO_FEATURE_32K_PAGES": "1", "CARGO_FEATURE_EXTENSION": "1", "CARGO_FEATURE_OTHER": "1"}

    features = features_from_env(env)

    assert features == ("32k-pages", "extension")
    assert select_page_size(features) is PageSize.P32K
