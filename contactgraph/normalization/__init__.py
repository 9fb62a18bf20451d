"""Identifier normalization.

Optional canonicalization of observed identity values before they reach
the resolver (enabled with ``NORMALIZE_IDENTIFIERS``).  Each normalizer
returns ``None`` for empty input and never raises.
"""
