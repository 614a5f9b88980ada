"""
File: amp_graphs/backend/numpy_kernels.py

Numpy kernels for the reference evaluator. Kernels take (inputs, attrs) and
return an array; the evaluator casts the result to the node's dtype. Ops with
an accumulation dtype attribute compute in that dtype.
"""

from typing import Callable, Dict, List, Any, Mapping, Optional
import numpy as np
from ..ir.dtypes import DType
from ..ops.atomic_types import OpType
from ..ops import schemas

Kernel = Callable[[List[np.ndarray], Mapping[str, Any]], np.ndarray]

_KERNELS: Dict[str, Kernel] = {}


def register_kernel(*op_types: str):
    def decorator(func):
        for op_type in op_types:
            _KERNELS[op_type] = func
        return func

    return decorator


def get_kernel(op_type: str) -> Optional[Kernel]:
    return _KERNELS.get(op_type, None)


def np_dtype(dtype: DType) -> np.dtype:
    if dtype == DType.BF16:
        raise NotImplementedError("numpy has no bfloat16 type")
    return np.dtype(dtype.value)


def _accumulate_in(attrs: Mapping[str, Any], *arrays: np.ndarray) -> List[np.ndarray]:
    accum = attrs.get("accum_dtype")
    if accum is None:
        return list(arrays)
    dt = np_dtype(DType.coerce(accum))
    return [a.astype(dt) for a in arrays]


# --- Math ---


@register_kernel(OpType.ADD)
def add_kernel(inputs, attrs):
    return np.add(inputs[0], inputs[1])


@register_kernel(OpType.MUL)
def mul_kernel(inputs, attrs):
    return np.multiply(inputs[0], inputs[1])


@register_kernel(OpType.DIVIDE)
def divide_kernel(inputs, attrs):
    return np.divide(inputs[0], inputs[1])


@register_kernel(OpType.POWER)
def power_kernel(inputs, attrs):
    return np.power(inputs[0], inputs[1])


@register_kernel(OpType.DOT)
def dot_kernel(inputs, attrs):
    a, b = _accumulate_in(attrs, inputs[0], inputs[1])
    return np.matmul(a, b)


@register_kernel(OpType.SQRT)
def sqrt_kernel(inputs, attrs):
    return np.sqrt(inputs[0])


@register_kernel(OpType.EXP)
def exp_kernel(inputs, attrs):
    return np.exp(inputs[0])


@register_kernel(OpType.LOG)
def log_kernel(inputs, attrs):
    return np.log(inputs[0])


@register_kernel(OpType.SIN)
def sin_kernel(inputs, attrs):
    return np.sin(inputs[0])


@register_kernel(OpType.COS)
def cos_kernel(inputs, attrs):
    return np.cos(inputs[0])


@register_kernel(OpType.NEGATE)
def negate_kernel(inputs, attrs):
    return np.negative(inputs[0])


@register_kernel(OpType.LESS)
def less_kernel(inputs, attrs):
    return np.less(inputs[0], inputs[1])


@register_kernel(OpType.GREATER)
def greater_kernel(inputs, attrs):
    return np.greater(inputs[0], inputs[1])


# --- Reduction ---


@register_kernel(OpType.SUM)
def sum_kernel(inputs, attrs):
    (x,) = _accumulate_in(attrs, inputs[0])
    return np.sum(x, axis=attrs.get("axis"), keepdims=attrs.get("keepdims", True))


@register_kernel(OpType.MAX)
def max_kernel(inputs, attrs):
    return np.max(
        inputs[0], axis=attrs.get("axis"), keepdims=attrs.get("keepdims", True)
    )


# --- Manipulation ---


@register_kernel(OpType.CAST)
def cast_kernel(inputs, attrs):
    return inputs[0].astype(np_dtype(DType.coerce(attrs["to"])))


@register_kernel(OpType.RESHAPE)
def reshape_kernel(inputs, attrs):
    return np.reshape(inputs[0], tuple(int(d) for d in inputs[1]))


@register_kernel(OpType.PERMUTE)
def permute_kernel(inputs, attrs):
    return np.transpose(inputs[0], attrs["dims"])


@register_kernel(OpType.CONCAT)
def concat_kernel(inputs, attrs):
    return np.concatenate(inputs, axis=attrs["axis"])


@register_kernel(OpType.GATHER)
def gather_kernel(inputs, attrs):
    return np.take(inputs[0], inputs[1].astype(np.int64), axis=0)


@register_kernel(OpType.WHERE)
def where_kernel(inputs, attrs):
    return np.where(inputs[0], inputs[1], inputs[2])


# --- Activations ---


@register_kernel(schemas.RELU)
def relu_kernel(inputs, attrs):
    x = inputs[0]
    return np.maximum(x, np.zeros((), dtype=x.dtype))


@register_kernel(schemas.TANH)
def tanh_kernel(inputs, attrs):
    return np.tanh(inputs[0])


@register_kernel(schemas.SIGMOID)
def sigmoid_kernel(inputs, attrs):
    x = inputs[0]
    one = np.ones((), dtype=x.dtype)
    return one / (one + np.exp(-x))


@register_kernel(schemas.SOFTMAX)
def softmax_kernel(inputs, attrs):
    x = inputs[0]
    axis = attrs.get("axis", -1)
    e = np.exp(x - np.max(x, axis=axis, keepdims=True))
    return e / np.sum(e, axis=axis, keepdims=True)
