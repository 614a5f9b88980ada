"""
File: amp_graphs/compiler/classification.py

Per-operator precision rules for the mixed-precision rewrite.
"""

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Any

from ..config import DEFAULT_RULE_PRIORITY
from ..ir.dtypes import DType
from ..ir.node import TensorNode
from .errors import AmpError, ClassificationError, InvalidRuleError, UnresolvedTypeError

logger = logging.getLogger(__name__)


class Category(Enum):
    # Run in the mixed dtype whatever the inputs are.
    ALWAYS = "always"
    # Run in the mixed dtype only if every floating input already is.
    FOLLOW = "follow"
    # Always run in the base dtype.
    NEVER = "never"


@dataclass(frozen=True)
class Classification:
    category: Category
    accum_dtype: DType
    out_dtype: DType


# (call_node, target_dtype) -> Classification or (category, accum, out)
Evaluator = Callable[[TensorNode, DType], Any]


@dataclass(frozen=True)
class ClassificationRule:
    priority: int
    seq: int
    evaluator: Evaluator

    @property
    def sort_key(self) -> Tuple[int, int]:
        # Equal priorities: the most recently registered rule wins.
        return (self.priority, self.seq)


class ClassificationRegistry:
    """
    Holds the classification rules for every operator.

    Several rules may be registered for the same operator; `resolve` applies
    the one with the highest priority. Operators without rules resolve to
    FOLLOW in the target dtype.
    """

    def __init__(self):
        self._rules: Dict[str, List[ClassificationRule]] = {}
        self._seq = itertools.count()

    def register(
        self,
        op_name: str,
        priority: int = DEFAULT_RULE_PRIORITY,
        evaluator: Optional[Evaluator] = None,
    ) -> ClassificationRule:
        if evaluator is None or not callable(evaluator):
            raise InvalidRuleError(
                f"Rule for '{op_name}' needs a callable evaluator, got {evaluator!r}",
                op_type=op_name,
            )
        rule = ClassificationRule(int(priority), next(self._seq), evaluator)
        rules = self._rules.setdefault(op_name, [])
        rules.append(rule)
        rules.sort(key=lambda r: r.sort_key)
        logger.debug("Registered rule for %s at priority %d", op_name, priority)
        return rule

    def rule(self, *op_names: str, priority: int = DEFAULT_RULE_PRIORITY):
        """Decorator registering one evaluator for several operators."""

        def decorator(func):
            for op_name in op_names:
                self.register(op_name, priority, func)
            return func

        return decorator

    def rules_for(self, op_name: str) -> List[ClassificationRule]:
        """Rules for an operator, lowest precedence first."""
        return list(self._rules.get(op_name, []))

    def __contains__(self, op_name: str) -> bool:
        return bool(self._rules.get(op_name))

    def copy(self) -> "ClassificationRegistry":
        new = ClassificationRegistry()
        for op_name, rules in self._rules.items():
            for r in rules:
                new.register(op_name, r.priority, r.evaluator)
        return new

    def resolve(
        self, op_name: str, call_node: TensorNode, target_dtype: DType
    ) -> Classification:
        rules = self._rules.get(op_name)
        if not rules:
            return Classification(Category.FOLLOW, target_dtype, target_dtype)

        rule = rules[-1]
        try:
            result = rule.evaluator(call_node, target_dtype)
        except AmpError:
            raise
        except Exception as exc:
            raise ClassificationError(
                f"Evaluator for '{op_name}' failed: {exc}",
                op_type=op_name,
                node_name=call_node.name,
            ) from exc

        return _coerce_result(result, op_name, call_node)


def _coerce_result(result: Any, op_name: str, call_node: TensorNode) -> Classification:
    if isinstance(result, Classification):
        return result

    try:
        category, accum, out = result
    except (TypeError, ValueError):
        raise ClassificationError(
            f"Evaluator for '{op_name}' must return (category, accum_dtype, out_dtype), "
            f"got {result!r}",
            op_type=op_name,
            node_name=call_node.name,
        ) from None

    if not isinstance(category, Category):
        try:
            category = Category(category)
        except ValueError:
            raise ClassificationError(
                f"Unknown category {category!r}",
                op_type=op_name,
                node_name=call_node.name,
            ) from None

    try:
        accum = DType.coerce(accum)
        out = DType.coerce(out)
    except ValueError as exc:
        raise ClassificationError(
            str(exc), op_type=op_name, node_name=call_node.name
        ) from None

    return Classification(category, accum, out)


def require_static_shape(node: TensorNode) -> Tuple[int, ...]:
    """
    For shape-dependent evaluators: returns the concrete shape of `node` or
    raises UnresolvedTypeError.
    """
    if not node.signature.is_static:
        raise UnresolvedTypeError(
            f"Static shape required, got {node.shape}",
            op_type=node.op_type,
            node_name=node.name,
        )
    return tuple(int(d) for d in node.shape)
