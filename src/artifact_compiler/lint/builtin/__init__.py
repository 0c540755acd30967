"""Built-in rule catalog.

Rule groups:
- metadata: session header (EM / WM)
- structure: per-section counts and required fields (ER..IC)
- crossref: ID conformance and item references (EX / WX / IX)
- provenance: citation anchors (EP-P / WP-P / IP-P)
"""

from artifact_compiler.lint.builtin import crossref, metadata, provenance, structure

BUILTIN_RULES = [
    *metadata.rules,
    *structure.rules,
    *crossref.rules,
    *provenance.rules,
]

__all__ = ["BUILTIN_RULES"]
