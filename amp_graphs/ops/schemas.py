"""
File: amp_graphs/ops/schemas.py

Schemas for the operators the IR knows about. Importing this module registers
them. Op types that are not registered here are opaque to graph passes.
"""

from .atomic_types import OpType
from .registry import register_op
from ..ir.dtypes import DType

# Fused ops produced by frontends / fusion passes
SOFTMAX = "Softmax"
RMS_NORM = "RMSNorm"
GROUP_NORM = "GroupNorm"
GELU = "GELU"
SILU = "SiLU"
SIGMOID = "Sigmoid"
TANH = "Tanh"
RELU = "ReLU"
CONV2D = "Conv2D"
ROPE = "RoPE"
EMBEDDING = "Embedding"
UPSAMPLE_2X = "Upsample2x"

# Matmul-like ops accept an accumulator wider than their inputs.
_ACCUMULATING = [OpType.DOT, CONV2D]

# Reductions can accumulate in a wider type but always emit their input dtype.
_REDUCING = [OpType.SUM]

_PLAIN = [
    OpType.ADD,
    OpType.MUL,
    OpType.DIVIDE,
    OpType.SQRT,
    OpType.SIN,
    OpType.COS,
    OpType.EXP,
    OpType.LOG,
    OpType.NEGATE,
    OpType.POWER,
    OpType.LESS,
    OpType.GREATER,
    OpType.MAX,
    OpType.SORT,
    OpType.RESHAPE,
    OpType.PERMUTE,
    OpType.SLICE,
    OpType.CONCAT,
    OpType.REPEAT,
    OpType.ARANGE,
    OpType.TRIU,
    OpType.GATHER,
    OpType.FILL,
    OpType.WHERE,
    SOFTMAX,
    RMS_NORM,
    GROUP_NORM,
    GELU,
    SILU,
    SIGMOID,
    TANH,
    RELU,
    ROPE,
    EMBEDDING,
    UPSAMPLE_2X,
]

for _name in _ACCUMULATING:
    register_op(
        _name,
        accum_dtype_attr="accum_dtype",
        out_dtype_attr="out_dtype",
        accum_dtypes=[DType.FP32, DType.FP16, DType.BF16],
    )

for _name in _REDUCING:
    register_op(_name, accum_dtype_attr="accum_dtype")

for _name in _PLAIN:
    register_op(_name)

# Cast is known but never reclassified; its target lives in attrs["to"].
register_op(OpType.CAST)
