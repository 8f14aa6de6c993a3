"""Build feature selection for the vendored allocator sources."""

from __future__ import annotations

import os
from enum import Enum
from typing import Iterable, Mapping

from .errors import ConfigError

ENV_FEATURE_PREFIX = "CARGO_FEATURE_"


class PageSize(str, Enum):
    """Mutually exclusive page-size variants; exactly one must be enabled."""

    P8K = "8k-pages"
    P32K = "32k-pages"
    P256K = "256k-pages"
    SMALL = "small-but-slow"

    @property
    def define(self) -> str:
        return _PAGE_SIZE_DEFINES[self]

    @property
    def env_var(self) -> str:
        return feature_env_var(self.value)


_PAGE_SIZE_DEFINES = {
    PageSize.P8K: "TCMALLOC_INTERNAL_8K_PAGES",
    PageSize.P32K: "TCMALLOC_INTERNAL_32K_PAGES",
    PageSize.P256K: "TCMALLOC_INTERNAL_256K_PAGES",
    PageSize.SMALL: "TCMALLOC_INTERNAL_SMALL_BUT_SLOW",
}

KNOWN_FEATURES = frozenset(
    {page_size.value for page_size in PageSize}
    | {"extension", "deprecated-perthread", "legacy-locking", "numa-aware"}
)


def feature_env_var(feature: str) -> str:
    """Map ``8k-pages`` to ``CARGO_FEATURE_8K_PAGES``."""
    return ENV_FEATURE_PREFIX + feature.upper().replace("-", "_")


def features_from_env(env: Mapping[str, str] | None = None) -> tuple[str, ...]:
    """Return the known features enabled through ``CARGO_FEATURE_*`` variables."""
    environ = os.environ if env is None else env
    return tuple(sorted(feature for feature in KNOWN_FEATURES if feature_env_var(feature) in environ))


def select_page_size(features: Iterable[str]) -> PageSize:
    """Pick the single enabled page size, failing on zero or several."""
    requested = [str(feature).strip().lower() for feature in features]
    unknown = sorted({feature for feature in requested if feature not in KNOWN_FEATURES})
    if unknown:
        raise ConfigError(
            f"Unknown build feature(s): {', '.join(unknown)}",
            details={"unknown": unknown},
        )
    selected: PageSize | None = None
    for page_size in PageSize:
        if page_size.value not in requested:
            continue
        if selected is not None:
            raise ConfigError(
                f"Can not set up more than one page size: {selected.value} and {page_size.value}",
                details={"page_sizes": [selected.value, page_size.value]},
            )
        selected = page_size
    if selected is None:
        raise ConfigError(
            "One page size feature should be enabled: " + ", ".join(item.value for item in PageSize)
        )
    return selected


__all__ = [
    "ENV_FEATURE_PREFIX",
    "KNOWN_FEATURES",
    "PageSize",
    "feature_env_var",
    "features_from_env",
    "select_page_size",
]
