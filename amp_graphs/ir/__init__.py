from .node import TensorNode, Function
from .graph import topological_sort, get_inputs, GraphBuilder
from .dtypes import DType, TensorSignature, Backend

__all__ = [
    "TensorNode",
    "Function",
    "topological_sort",
    "get_inputs",
    "GraphBuilder",
    "DType",
    "TensorSignature",
    "Backend",
]
