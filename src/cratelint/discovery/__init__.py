# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Package discovery for the crate corpus."""

from __future__ import annotations

from .crate_roots import touch_crate_roots
from .packages import (
    MANIFEST_NAME,
    TARGET_DIR_NAME,
    CatalogError,
    CatalogErrorKind,
    CatalogWarning,
    PackageCatalog,
    enumerate_packages,
)

__all__ = [
    "CatalogError",
    "CatalogErrorKind",
    "CatalogWarning",
    "MANIFEST_NAME",
    "PackageCatalog",
    "TARGET_DIR_NAME",
    "enumerate_packages",
    "touch_crate_roots",
]
