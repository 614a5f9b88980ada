"""
File: amp_graphs/compiler/default_rules.py

Bundled classification table for the mixed-precision rewrite.

ALWAYS ops are compute bound and gain the most from the mixed dtype. FOLLOW ops
are cheap enough that a cast costs more than it saves, so they stay in
whatever dtype their inputs already have. NEVER ops lose too much accuracy in
reduced precision: as a rule of thumb, ops where |f(x)| >> |x| for expected
inputs, and large summations.
"""

from ..config import DEFAULT_RULE_PRIORITY
from ..ir.dtypes import DType, is_floating
from ..ir.node import TensorNode
from ..ops.atomic_types import OpType
from ..ops import schemas
from ..ops.registry import get_op_schema
from .classification import Category, Classification, ClassificationRegistry

DEFAULT_ALWAYS_LIST = [
    OpType.DOT,
    schemas.CONV2D,
]

DEFAULT_FOLLOW_LIST = [
    # Simple arithmetic
    OpType.ADD,
    OpType.MUL,
    OpType.DIVIDE,
    OpType.SQRT,
    OpType.NEGATE,
    OpType.SIN,
    OpType.COS,
    OpType.MAX,
    # Comparison
    OpType.LESS,
    OpType.GREATER,
    # Data movement and shape changes
    OpType.RESHAPE,
    OpType.PERMUTE,
    OpType.SLICE,
    OpType.CONCAT,
    OpType.REPEAT,
    OpType.TRIU,
    OpType.GATHER,
    OpType.FILL,
    OpType.WHERE,
    schemas.UPSAMPLE_2X,
    schemas.EMBEDDING,
    schemas.ROPE,
    # Activations that saturate in a narrow range
    schemas.RELU,
    schemas.GELU,
    schemas.SILU,
    schemas.SIGMOID,
    schemas.TANH,
]

DEFAULT_NEVER_LIST = [
    OpType.EXP,
    OpType.LOG,
    OpType.POWER,
    schemas.SOFTMAX,
    schemas.RMS_NORM,
    schemas.GROUP_NORM,
    # Large summations overflow the narrow exponent range
    OpType.SUM,
    # Range ends may not be representable in the mixed dtype
    OpType.ARANGE,
    # Sort kernels pack keys assuming the full-width layout
    OpType.SORT,
]


def generic_out_dtypes(call_node: TensorNode, mixed_dtype: DType):
    """
    (accum_dtype, out_dtype) for most ops: emit the mixed dtype, and when the
    operator accepts an accumulation dtype keep the one the call already
    declares, or else its original precision.
    """
    schema = get_op_schema(call_node.op_type)
    if schema is None or schema.accum_dtype_attr is None:
        return mixed_dtype, mixed_dtype

    declared = call_node.attrs.get(schema.accum_dtype_attr)
    candidates = [call_node.dtype]
    if declared is not None:
        candidates.insert(0, DType.coerce(declared))
    for dtype in candidates:
        if is_floating(dtype) and schema.accepts_accum_dtype(dtype):
            return dtype, mixed_dtype
    return mixed_dtype, mixed_dtype


def generic_always_op(call_node: TensorNode, mixed_dtype: DType) -> Classification:
    return Classification(Category.ALWAYS, *generic_out_dtypes(call_node, mixed_dtype))


def generic_follow_op(call_node: TensorNode, mixed_dtype: DType) -> Classification:
    return Classification(Category.FOLLOW, mixed_dtype, mixed_dtype)


def generic_never_op(call_node: TensorNode, mixed_dtype: DType) -> Classification:
    return Classification(Category.NEVER, mixed_dtype, mixed_dtype)


def register_default_rules(
    registry: ClassificationRegistry, priority: int = DEFAULT_RULE_PRIORITY
) -> ClassificationRegistry:
    for op_name in DEFAULT_ALWAYS_LIST:
        registry.register(op_name, priority, generic_always_op)
    for op_name in DEFAULT_FOLLOW_LIST:
        registry.register(op_name, priority, generic_follow_op)
    for op_name in DEFAULT_NEVER_LIST:
        registry.register(op_name, priority, generic_never_op)
    return registry


def default_registry() -> ClassificationRegistry:
    """A fresh registry holding the bundled rules."""
    return register_default_rules(ClassificationRegistry())
