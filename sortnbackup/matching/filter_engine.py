"""Filter expression evaluation.

This module provides the FilterEngine class, which evaluates a filter tree
against one entry with short-circuit semantics:

    all      - children left to right, stops at the first False (empty: True)
    any      - children left to right, stops at the first True (empty: False)
    not      - inverts its child
    catch_all- always True
    predicate- delegated to PredicateEvaluator

Children are never reordered; configuration authors place expensive image
predicates last. A predicate that fails with MetadataError counts as False
and is reported as a diagnostic.
"""

import logging
from typing import List, Optional

from sortnbackup.exceptions import MetadataError
from sortnbackup.models import Entry
from sortnbackup.models.filters import AllOf, AnyOf, CatchAll, FilterExpr, Not, Predicate

from .predicates import PredicateEvaluator

logger = logging.getLogger(__name__)


class _Frame:
    """A combinator waiting for its children's results."""

    __slots__ = ("node", "index")

    def __init__(self, node: FilterExpr) -> None:
        self.node = node
        self.index = 0


class FilterEngine:
    """Evaluates filter trees with an explicit stack.

    The evaluator never recurses in Python, so deeply nested configurations
    cannot exhaust the interpreter stack.

    Example:
        >>> engine = FilterEngine(PredicateEvaluator(MetadataCache()))
        >>> engine.matches(AllOf((Predicate(PredicateKind.IS_FILE),)), entry)
        True
    """

    def __init__(self, predicates: PredicateEvaluator) -> None:
        self.predicates = predicates

    def matches(
        self,
        expr: FilterExpr,
        entry: Entry,
        diagnostics: Optional[List[str]] = None,
    ) -> bool:
        """Evaluate ``expr`` against ``entry``.

        Args:
            expr: Filter tree to evaluate.
            entry: Entry under test.
            diagnostics: Optional list receiving one line per predicate that
                failed with MetadataError.

        Returns:
            True if the entry matches.
        """
        stack: List[_Frame] = [_Frame(expr)]
        result: Optional[bool] = None

        while stack:
            frame = stack[-1]
            node = frame.node

            if isinstance(node, (AllOf, AnyOf)):
                if result is not None:
                    # A child just finished.
                    deciding = isinstance(node, AnyOf)
                    if result is deciding:
                        stack.pop()
                        continue
                    frame.index += 1
                    result = None
                if frame.index < len(node.children):
                    stack.append(_Frame(node.children[frame.index]))
                    continue
                stack.pop()
                result = isinstance(node, AllOf)

            elif isinstance(node, Not):
                if frame.index == 0:
                    frame.index = 1
                    stack.append(_Frame(node.child))
                    continue
                stack.pop()
                result = not result

            elif isinstance(node, CatchAll):
                stack.pop()
                result = True

            elif isinstance(node, Predicate):
                stack.pop()
                result = self._test(node, entry, diagnostics)

            else:
                raise TypeError(f"Unknown filter node: {node!r}")

        return bool(result)

    def _test(
        self,
        predicate: Predicate,
        entry: Entry,
        diagnostics: Optional[List[str]],
    ) -> bool:
        try:
            return self.predicates.test(predicate, entry)
        except MetadataError as e:
            if e.entry is None:
                e.entry = entry
            message = f"{e.describe()} (predicate {predicate.describe()} treated as false)"
            logger.warning(message)
            if diagnostics is not None:
                diagnostics.append(message)
            return False
