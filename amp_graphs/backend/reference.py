"""
File: amp_graphs/backend/reference.py
"""

import logging
import numpy as np
from typing import Dict, Any, Sequence
from ..ops.atomic_types import OpType
from ..ir.node import TensorNode, Function
from ..ir.graph import topological_sort
from .numpy_kernels import get_kernel, np_dtype

logger = logging.getLogger(__name__)


def evaluate_graph(root: TensorNode, inputs: Dict[str, Any]) -> Any:
    """
    Evaluates the graph ending at `root` with numpy. Returns an array, or a
    tuple of results when `root` is a Tuple node.

    Every result is converted to its node's dtype, so a graph rewritten to a
    narrower dtype really computes in it.
    """
    cache: Dict[TensorNode, Any] = {}

    for node in topological_sort(root):
        logger.debug("Evaluating node: %s", node)

        if node.op_type == OpType.INPUT:
            if node.name not in inputs:
                raise ValueError(f"Missing input data for node: {node.name}")
            val = np.asarray(inputs[node.name])
        elif node.op_type == OpType.CONSTANT:
            val = np.asarray(node.attrs.get("value"))
        elif node.op_type == OpType.TUPLE:
            cache[node] = tuple(cache[p] for p in node.parents)
            continue
        elif node.op_type == OpType.TUPLE_GET_ITEM:
            cache[node] = cache[node.parents[0]][node.attrs["index"]]
            continue
        elif node.op_type == OpType.CALL:
            val = evaluate_function(
                node.attrs["function"], [cache[p] for p in node.parents]
            )
        else:
            kernel = get_kernel(node.op_type)
            if kernel is None:
                if OpType.is_atomic(node.op_type):
                    raise NotImplementedError(
                        f"No registered kernel for atomic op '{node.op_type}'"
                    )
                raise NotImplementedError(f"No kernel for '{node.op_type}'")
            val = kernel([cache[p] for p in node.parents], node.attrs)

        if node.dtype is not None and isinstance(val, np.ndarray):
            val = val.astype(np_dtype(node.dtype), copy=False)
        cache[node] = val

    return cache[root]


def evaluate_function(fn: Function, args: Sequence[Any]) -> Any:
    if len(args) != len(fn.params):
        raise ValueError(
            f"Function '{fn.name}' expects {len(fn.params)} arguments, got {len(args)}"
        )
    bound = {p.name: a for p, a in zip(fn.params, args)}
    return evaluate_graph(fn.body, bound)
