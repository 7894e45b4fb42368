"""Additional index creation for query performance.

These indexes complement the basic indexes defined in SQLModel Field()
declarations. They are composite indexes keyed by corpus, matching how every
lookup and every resolver pass is scoped.

Call create_additional_indexes() after Database.create_all().
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine


ADDITIONAL_INDEXES = [
    # Natural-key lookups (resolver joins)
    "CREATE INDEX IF NOT EXISTS idx_functions_corpus_key ON functions(corpus, natural_key)",
    "CREATE INDEX IF NOT EXISTS idx_classes_corpus_key ON classes(corpus, natural_key)",
    # Name lookups (search, callers, chain, hierarchy)
    "CREATE INDEX IF NOT EXISTS idx_functions_corpus_name ON functions(corpus, name)",
    "CREATE INDEX IF NOT EXISTS idx_classes_corpus_name ON classes(corpus, name)",
    "CREATE INDEX IF NOT EXISTS idx_variables_corpus_name ON variables(corpus, name)",
    # Call edge traversal
    "CREATE INDEX IF NOT EXISTS idx_calls_corpus_caller_key ON function_calls(corpus, caller_key)",
    "CREATE INDEX IF NOT EXISTS idx_calls_corpus_callee_key ON function_calls(corpus, callee_key)",
    # Method membership
    "CREATE INDEX IF NOT EXISTS idx_class_methods_corpus_class ON class_methods(corpus, class_key)",
]

# Depends on the callee_name column, which older stores gain through a migration.
CALLEE_NAME_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_calls_corpus_callee_name "
    "ON function_calls(corpus, callee_name)"
)


def create_additional_indexes(engine: Engine) -> None:
    """
    Create additional composite indexes.

    Call this after Database.create_all() to add performance indexes
    that cannot be expressed via SQLModel Field() declarations.
    """
    with engine.connect() as conn:
        for sql in ADDITIONAL_INDEXES:
            conn.execute(text(sql))
        conn.commit()
