from dataclasses import dataclass, field
from typing import Callable, Dict, NamedTuple, Optional

from ..ir.dtypes import DType
from ..ir.node import TensorNode, Function
from .cast_cache import CastCache
from .classification import ClassificationRegistry
from .errors import RewriteCancelledError


class Replacement(NamedTuple):
    node: TensorNode
    # Current floating-point dtype of `node`; None for non-floating outputs.
    float_dtype: Optional[DType]


@dataclass
class RewriteContext:
    """
    State of one mixed-precision rewrite. Built at pass entry and dropped when
    the pass returns; never shared between invocations.
    """

    mixed_dtype: DType
    base_dtype: DType
    registry: ClassificationRegistry
    cast_cache: CastCache = field(default_factory=CastCache)
    replacements: Dict[TensorNode, Replacement] = field(default_factory=dict)
    functions: Dict[Function, Function] = field(default_factory=dict)
    should_cancel: Optional[Callable[[], bool]] = None

    def __post_init__(self):
        for role, dtype in (("mixed", self.mixed_dtype), ("base", self.base_dtype)):
            if not isinstance(dtype, DType) or not dtype.is_floating:
                raise ValueError(f"The {role} dtype must be a floating DType, got {dtype!r}")
        if self.mixed_dtype == self.base_dtype:
            raise ValueError(
                f"Mixed and base dtype are both {self.mixed_dtype.value}; nothing to rewrite"
            )

    def record(
        self, original: TensorNode, new: TensorNode, float_dtype: Optional[DType]
    ) -> Replacement:
        if original in self.replacements:
            raise RuntimeError(f"Node '{original.name}' was rewritten twice")
        rep = Replacement(new, float_dtype)
        self.replacements[original] = rep
        return rep

    def lookup(self, original: TensorNode) -> Replacement:
        return self.replacements[original]

    def is_visited(self, original: TensorNode) -> bool:
        return original in self.replacements

    def check_cancelled(self, node: TensorNode):
        if self.should_cancel is not None and self.should_cancel():
            raise RewriteCancelledError(
                "Mixed-precision rewrite cancelled",
                op_type=node.op_type,
                node_name=node.name,
            )
