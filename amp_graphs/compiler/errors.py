"""
Errors raised by the mixed-precision rewrite.

Every error is fatal for the pass: the caller never receives a partially
rewritten graph.
"""

from typing import Optional
from ..ir.dtypes import DType


class AmpError(Exception):
    """Base class for mixed-precision rewrite failures."""

    def __init__(
        self,
        message: str,
        op_type: Optional[str] = None,
        node_name: Optional[str] = None,
        dtype: Optional[DType] = None,
    ):
        self.op_type = op_type
        self.node_name = node_name
        self.dtype = dtype
        context = []
        if op_type is not None:
            context.append(f"op={op_type}")
        if node_name is not None:
            context.append(f"node={node_name}")
        if dtype is not None:
            context.append(f"dtype={getattr(dtype, 'value', dtype)}")
        if context:
            message = f"{message} [{', '.join(context)}]"
        super().__init__(message)


class InvalidRuleError(AmpError):
    """A classification rule was registered without a usable evaluator."""


class ClassificationError(AmpError):
    """An evaluator failed or returned an unusable (category, accum, out) triple."""


class CastInsertionError(AmpError):
    """A cast was requested from a non-floating producer or to an unexpected dtype."""


class UnresolvedTypeError(AmpError):
    """A node lacks the dtype/shape annotation the rewrite needs."""


class AttributeReconstructionError(AmpError):
    """The operator cannot express the requested accumulation/output dtype."""


class RewriteCancelledError(AmpError):
    """The host asked the pass to stop."""
