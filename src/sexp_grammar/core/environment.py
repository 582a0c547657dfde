"""
Runtime configuration for sexp_grammar.

Settings are read from environment variables:

    SEXP_GRAMMAR_MAX_DEPTH            unfoldings per value node (default 200)
    SEXP_GRAMMAR_MAX_SIMPLIFY_PASSES  simplifier pass limit (default 64)

Usage:
    from sexp_grammar.core.environment import get_settings

    settings = get_settings()
    matches(grammar, value, settings=settings)
"""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

MAX_DEPTH_VAR = "SEXP_GRAMMAR_MAX_DEPTH"
MAX_SIMPLIFY_PASSES_VAR = "SEXP_GRAMMAR_MAX_SIMPLIFY_PASSES"

DEFAULT_MAX_DEPTH = 200
DEFAULT_MAX_SIMPLIFY_PASSES = 64


class GrammarSettings(BaseModel):
    """Tunables for recognition and simplification."""

    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    max_simplify_passes: int = Field(default=DEFAULT_MAX_SIMPLIFY_PASSES, ge=1)

    model_config = ConfigDict(frozen=True)


def _read_positive_int(var: str, default: int) -> int:
    raw = os.environ.get(var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        logger.warning(
            "Invalid %s value '%s'. Expected a positive integer. Defaulting to %d.",
            var,
            raw,
            default,
        )
        return default
    return value


def get_settings() -> GrammarSettings:
    """Build settings from the environment.

    Returns:
        GrammarSettings with defaults for unset or invalid variables.
    """
    return GrammarSettings(
        max_depth=_read_positive_int(MAX_DEPTH_VAR, DEFAULT_MAX_DEPTH),
        max_simplify_passes=_read_positive_int(
            MAX_SIMPLIFY_PASSES_VAR, DEFAULT_MAX_SIMPLIFY_PASSES
        ),
    )
