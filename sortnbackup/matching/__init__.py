"""Filter matching package for sortnbackup.

This package decides whether a file group applies to an entry:

- PredicateEvaluator: Tests a single leaf predicate.
- FilterEngine: Evaluates a whole filter tree with short-circuiting.

Example:
    >>> from sortnbackup.matching import FilterEngine, PredicateEvaluator
    >>> from sortnbackup.scanning import MetadataCache
    >>> engine = FilterEngine(PredicateEvaluator(MetadataCache()))
    >>> engine.matches(group.filter, entry)
"""

from .filter_engine import FilterEngine
from .predicates import PredicateEvaluator

__all__ = ["FilterEngine", "PredicateEvaluator"]
