from .node import TensorNode, Function
from .dtypes import DType
from ..ops.atomic_types import OpType
from ..ops import schemas
import numpy as np
from typing import Set, List, Sequence, Union, Optional


def topological_sort(root: Union[TensorNode, Sequence[TensorNode]]) -> List[TensorNode]:
    """
    Returns a linear execution order (post-order) for the graph ending at 'root'.
    Every node appears once, after all of its parents.

    Iterative so that deep graphs do not hit the recursion limit.
    """
    roots = [root] if isinstance(root, TensorNode) else list(root)
    visited: Set[TensorNode] = set()
    order: List[TensorNode] = []

    for r in roots:
        if r in visited:
            continue
        visited.add(r)
        stack = [(r, iter(r.parents))]
        while stack:
            node, parents = stack[-1]
            for parent in parents:
                if parent not in visited:
                    visited.add(parent)
                    stack.append((parent, iter(parent.parents)))
                    break
            else:
                stack.pop()
                order.append(node)

    return order


def get_inputs(root: TensorNode) -> List[TensorNode]:
    """Returns all leaf nodes (OpType.INPUT) required for this graph."""
    topo = topological_sort(root)
    return [n for n in topo if n.op_type == OpType.INPUT]


def count_ops(root: TensorNode, op_type: str) -> int:
    return sum(1 for n in topological_sort(root) if n.op_type == op_type)


def find_nodes(root: TensorNode, op_type: str) -> List[TensorNode]:
    return [n for n in topological_sort(root) if n.op_type == op_type]


class GraphBuilder:
    """
    Convenience constructor for typed graphs. Output dtypes and shapes follow
    the first floating argument, which is what type inference would produce
    for these ops.
    """

    def __init__(self):
        self.params = {}
        self.inputs = {}
        self._count = 0

    def _next_name(self, op_name):
        self._count += 1
        return f"{op_name}_{self._count}"

    def _op(self, op_type, args, dtype=None, shape=None, attrs=None, prefix=None):
        if dtype is None:
            dtype = args[0].dtype
        if shape is None:
            shape = args[0].shape
        return TensorNode(
            op_type,
            dtype,
            list(args),
            shape,
            name=self._next_name(prefix or op_type.lower()),
            attrs=attrs or {},
        )

    # --- Core Nodes ---

    def input(self, name, shape, dtype=DType.FP32):
        node = TensorNode(OpType.INPUT, dtype, [], shape, name)
        self.inputs[name] = node
        return node

    def const(self, value, dtype=None):
        if dtype is None:
            if isinstance(value, float) or (
                isinstance(value, list)
                and len(value) > 0
                and isinstance(value[0], float)
            ):
                dtype = DType.FP32
            elif isinstance(value, bool):
                dtype = DType.BOOL
            elif isinstance(value, int) or (
                isinstance(value, list) and len(value) > 0 and isinstance(value[0], int)
            ):
                dtype = DType.INT32
            elif hasattr(value, "dtype"):
                # Handle numpy arrays and numpy scalar types
                dt = str(value.dtype)
                if dt in ("float16", "float32", "float64"):
                    dtype = DType(dt)
                elif "int" in dt:
                    dtype = DType.INT32
                elif "bool" in dt:
                    dtype = DType.BOOL
                else:
                    dtype = DType.FP32
            else:
                raise ValueError(
                    f"Could not infer dtype for constant with type {type(value)}"
                )
        value = np.asarray(value, dtype=dtype.value if dtype != DType.BF16 else None)
        if value.ndim == 0:
            value = value.reshape(1)
        return TensorNode(
            OpType.CONSTANT,
            dtype,
            [],
            value.shape,
            name=self._next_name("const"),
            attrs={"value": value},
        )

    def param(self, name, shape, dtype=DType.FP32):
        node = TensorNode(OpType.INPUT, dtype, [], shape, name)
        self.params[name] = node
        return node

    # --- Math Ops ---

    def add(self, a, b):
        return self._op(OpType.ADD, [a, b])

    def mul(self, a, b):
        return self._op(OpType.MUL, [a, b])

    def divide(self, a, b):
        return self._op(OpType.DIVIDE, [a, b], prefix="div")

    def dot(self, a, b, accum_dtype=None, out_dtype=None):
        shape = None
        if a.shape is not None and b.shape is not None:
            shape = tuple(a.shape[:-1]) + tuple(b.shape[-1:])
        attrs = {}
        if accum_dtype is not None:
            attrs["accum_dtype"] = accum_dtype
        if out_dtype is not None:
            attrs["out_dtype"] = out_dtype
        return self._op(
            OpType.DOT, [a, b], dtype=out_dtype or a.dtype, shape=shape, attrs=attrs
        )

    def sqrt(self, a):
        return self._op(OpType.SQRT, [a])

    def exp(self, a):
        return self._op(OpType.EXP, [a])

    def log(self, a):
        return self._op(OpType.LOG, [a])

    def negate(self, a):
        return self._op(OpType.NEGATE, [a], prefix="neg")

    def power(self, a, b):
        return self._op(OpType.POWER, [a, b], prefix="pow")

    def less(self, a, b):
        return self._op(OpType.LESS, [a, b], dtype=DType.BOOL)

    # --- Reduction Ops ---

    def sum(self, a, axis=None, keepdims=True, accum_dtype=None):
        attrs = {"axis": axis, "keepdims": keepdims}
        if accum_dtype is not None:
            attrs["accum_dtype"] = accum_dtype
        shape = None
        if a.shape is not None:
            shape = _reduced_shape(a.shape, axis, keepdims)
        return self._op(OpType.SUM, [a], shape=shape, attrs=attrs)

    def max(self, a, axis=None, keepdims=True):
        shape = None
        if a.shape is not None:
            shape = _reduced_shape(a.shape, axis, keepdims)
        return self._op(
            OpType.MAX, [a], shape=shape, attrs={"axis": axis, "keepdims": keepdims}
        )

    # --- Manipulation Ops ---

    def reshape(self, a, shape_node, shape=None):
        return self._op(OpType.RESHAPE, [a, shape_node], shape=shape)

    def permute(self, a, dims: List[int]):
        shape = tuple(a.shape[d] for d in dims) if a.shape is not None else None
        return self._op(OpType.PERMUTE, [a], shape=shape, attrs={"dims": dims})

    def concat(self, tensors: List[TensorNode], axis: int):
        shape = None
        if all(t.shape is not None for t in tensors):
            shape = list(tensors[0].shape)
            dims = [t.shape[axis] for t in tensors]
            shape[axis] = None if any(d is None for d in dims) else sum(dims)
            shape = tuple(shape)
        return self._op(OpType.CONCAT, tensors, shape=shape, attrs={"axis": axis})

    def cast(self, a, dtype: DType):
        return self._op(OpType.CAST, [a], dtype=dtype, attrs={"to": dtype})

    def gather(self, data, indices):
        shape = None
        if data.shape is not None and indices.shape is not None:
            shape = tuple(indices.shape) + tuple(data.shape[1:])
        return self._op(OpType.GATHER, [data, indices], shape=shape)

    def where(self, condition, x, y):
        return self._op(OpType.WHERE, [condition, x, y], dtype=x.dtype, shape=x.shape)

    # --- Fused Ops ---

    def softmax(self, x, axis=-1):
        return self._op(schemas.SOFTMAX, [x], attrs={"axis": axis})

    def relu(self, x):
        return self._op(schemas.RELU, [x])

    def tanh(self, x):
        return self._op(schemas.TANH, [x])

    def sigmoid(self, x):
        return self._op(schemas.SIGMOID, [x])

    def conv2d(self, x, weight, kernel_size=3, stride=1, padding=1):
        return self._op(
            schemas.CONV2D,
            [x, weight],
            attrs={"kernel_size": kernel_size, "stride": stride, "padding": padding},
        )

    # --- Structure ---

    def op(self, op_type, args, dtype=None, shape=None, attrs=None):
        """Generic call node, for ops without a dedicated helper."""
        return self._op(op_type, args, dtype=dtype, shape=shape, attrs=attrs)

    def tuple(self, fields: List[TensorNode]):
        return TensorNode(
            OpType.TUPLE, None, list(fields), name=self._next_name("tuple")
        )

    def get_item(self, tup: TensorNode, index: int):
        if tup.op_type != OpType.TUPLE:
            raise ValueError(f"get_item expects a Tuple node, got {tup.op_type}")
        if not 0 <= index < len(tup.parents):
            raise ValueError(
                f"Tuple index {index} out of range for '{tup.name}' "
                f"with {len(tup.parents)} fields"
            )
        field_node = tup.parents[index]
        return TensorNode(
            OpType.TUPLE_GET_ITEM,
            field_node.dtype,
            [tup],
            field_node.shape,
            name=self._next_name("item"),
            attrs={"index": index},
        )

    def function(self, params: List[TensorNode], body: TensorNode, name=None):
        if name is None:
            return Function(params, body)
        return Function(params, body, name)

    def call(self, fn: Function, args: List[TensorNode]):
        if len(args) != len(fn.params):
            raise ValueError(
                f"Function '{fn.name}' expects {len(fn.params)} arguments, got {len(args)}"
            )
        return TensorNode(
            OpType.CALL,
            fn.body.dtype,
            list(args),
            fn.body.shape,
            name=self._next_name("call"),
            attrs={"function": fn},
        )


def _reduced_shape(shape, axis: Optional[int], keepdims: bool):
    if axis is None:
        return tuple(1 for _ in shape) if keepdims else ()
    axis = axis % len(shape)
    if keepdims:
        return tuple(1 if i == axis else d for i, d in enumerate(shape))
    return tuple(d for i, d in enumerate(shape) if i != axis)
