import hashlib
import json
import numpy as np
from enum import Enum
from typing import Any, Dict
from ..ops.atomic_types import OpType


def _hash_string(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _attr_default(value: Any) -> Any:
    from .node import Function

    if isinstance(value, Function):
        # Functions hash by the structure of their body, not their identity
        params = [f"{p.name}:{p.dtype.value if p.dtype else '?'}" for p in value.params]
        return f"FN|{','.join(params)}|{get_structural_hash(value.body)}"
    if isinstance(value, Enum):
        return value.value
    return str(value)


def get_structural_hash(node, memo: Dict = None) -> str:
    """
    Hash of the sub-graph ending at `node`. Node names of non-leaf nodes are
    ignored, so two graphs built independently with the same ops, dtypes,
    shapes and attributes hash identically.
    """
    if memo is None:
        memo = {}

    from .graph import topological_sort

    for n in topological_sort(node):
        if n in memo:
            continue
        dtype_str = n.dtype.value if n.dtype else "?"

        # 1. Base Cases
        if n.op_type == OpType.INPUT:
            memo[n] = _hash_string(
                f"INPUT|{n.name}|{dtype_str}|{n.shape}|{n.backend.value}"
            )
            continue

        if n.op_type == OpType.CONSTANT:
            val = n.attrs.get("value")
            if isinstance(val, np.ndarray):
                val_content = str(val.dtype) + hashlib.md5(val.tobytes()).hexdigest()
            else:
                val_content = str(val)
            memo[n] = _hash_string(f"CONST|{dtype_str}|{n.shape}|{val_content}")
            continue

        # 2. Parents are already hashed (post-order)
        parent_hashes = [memo[p] for p in n.parents]

        # 3. Canonicalize Commutative Ops
        if n.op_type in (OpType.ADD, OpType.MUL):
            parent_hashes.sort()

        # 4. Attributes
        attrs_str = json.dumps(dict(n.attrs), sort_keys=True, default=_attr_default)

        # 5. Compute
        content = f"{n.op_type}|{dtype_str}|{n.shape}|{n.backend.value}|{attrs_str}|{','.join(parent_hashes)}"
        memo[n] = _hash_string(content)

    return memo[node]


def compute_structural_hash(node) -> str:
    return get_structural_hash(node)
