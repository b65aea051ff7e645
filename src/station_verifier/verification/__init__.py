"""
Verification

Deterministic part/vehicle compatibility classification used by the
workflow engine. No randomness lives here.
"""

from .classifier import (
    Classification,
    CompatibilityVerifier,
    classify,
)

__all__ = [
    "Classification",
    "CompatibilityVerifier",
    "classify",
]
