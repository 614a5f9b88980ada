"""
File: amp_graphs/ops/registry.py
"""

from dataclasses import dataclass
from typing import Dict, Optional, FrozenSet, List
from ..ir.dtypes import DType


@dataclass(frozen=True)
class OpSchema:
    """
    Static description of an operator.

    accum_dtype_attr / out_dtype_attr name the attributes through which the
    operator accepts an explicit accumulation / output dtype. None means the
    operator has no such attribute and computes in its input dtype.
    """

    name: str
    accum_dtype_attr: Optional[str] = None
    out_dtype_attr: Optional[str] = None
    # None means any floating dtype is accepted for accumulation
    accum_dtypes: Optional[FrozenSet[DType]] = None

    def accepts_accum_dtype(self, dtype: DType) -> bool:
        if self.accum_dtype_attr is None:
            return False
        return self.accum_dtypes is None or dtype in self.accum_dtypes


_OP_REGISTRY: Dict[str, OpSchema] = {}


def register_op(
    name: str,
    accum_dtype_attr: Optional[str] = None,
    out_dtype_attr: Optional[str] = None,
    accum_dtypes: Optional[List[DType]] = None,
) -> OpSchema:
    """Registers (or replaces) the schema of a known operator."""
    schema = OpSchema(
        name,
        accum_dtype_attr,
        out_dtype_attr,
        frozenset(accum_dtypes) if accum_dtypes is not None else None,
    )
    _OP_REGISTRY[name] = schema
    return schema


def get_op_schema(name: str) -> Optional[OpSchema]:
    return _OP_REGISTRY.get(name, None)


def is_known_op(name: str) -> bool:
    return name in _OP_REGISTRY