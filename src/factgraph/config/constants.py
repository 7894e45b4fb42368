"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are store limits, response caps and query semantics.

For configurable values, see models.py (IndexConfig, LimitsConfig, etc.).
"""

# =============================================================================
# Store Limits
# =============================================================================

SQLITE_MAX_VARIABLES = 32766
"""Hard per-statement bound parameter limit of SQLite (3.32+)."""

DEFAULT_MAX_PARAMETERS = 8000
"""Conservative per-statement parameter budget for batched inserts."""

# =============================================================================
# Query Maximums
# =============================================================================

SEARCH_MAX_LIMIT = 100
"""Maximum results for fuzzy function search."""

CALLERS_MAX_LIMIT = 200
"""Maximum call sites returned by a caller lookup."""

CALL_CHAIN_MAX_DEPTH = 20
"""Maximum depth accepted for call-chain search."""

CALL_CHAIN_MAX_STATES = 50_000
"""Partial paths kept per call-chain search before the frontier is truncated."""

HIERARCHY_MAX_DEPTH = 10
"""Ancestor levels walked; bounds cyclic parent data."""

# =============================================================================
# Query Semantics
# =============================================================================

TRIGRAM_SIMILARITY_THRESHOLD = 0.3
"""Minimum trigram similarity for a fuzzy match (pg_trgm default)."""
