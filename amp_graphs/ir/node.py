from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Tuple, Optional, Mapping, Any, Sequence
import uuid
from .dtypes import DType, TensorSignature, Backend
from ..ops.atomic_types import OpType


@dataclass(eq=False, frozen=True)
class TensorNode:
    """
    Immutable value node of the graph.

    Nodes are compared and hashed by identity, so the same node can be shared
    by several consumers and used as a key in memo tables. To change a node,
    build a new one with `replace`.
    """

    op_type: str
    dtype: Optional[DType]
    parents: Sequence["TensorNode"]
    shape: Optional[Tuple[Optional[int], ...]] = None
    name: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    attrs: Mapping[str, Any] = field(default_factory=dict)
    backend: Backend = Backend.CPU_NUMPY

    def __post_init__(self):
        object.__setattr__(self, "parents", tuple(self.parents))
        object.__setattr__(self, "attrs", MappingProxyType(dict(self.attrs)))
        if self.shape is not None:
            object.__setattr__(self, "shape", tuple(self.shape))

    def replace(self, **changes) -> "TensorNode":
        """Returns a copy of this node with the given fields changed."""
        return replace(self, **changes)

    def with_attrs(self, **overrides) -> "TensorNode":
        attrs = dict(self.attrs)
        attrs.update(overrides)
        return replace(self, attrs=attrs)

    @property
    def signature(self) -> TensorSignature:
        return TensorSignature(self.dtype, self.shape, self.backend)

    @property
    def is_leaf(self) -> bool:
        return self.op_type in (OpType.INPUT, OpType.CONSTANT)

    def get_details(self) -> str:
        out_sig = f"{self.dtype.name if self.dtype else '?'} | {self.shape}"
        lines = []
        header = f"Node: {self.name} [{self.op_type}]"
        lines.append(header)
        lines.append("-" * len(header))
        lines.append(f"Output Signature : {out_sig}")
        lines.append(f"Backend          : {self.backend}")
        lines.append("Parents          :")
        if not self.parents:
            lines.append("  (None - Leaf Node)")
        else:
            for idx, parent in enumerate(self.parents):
                p_sig = f"{parent.dtype.name if parent.dtype else '?'} | {parent.shape}"
                lines.append(f"  [{idx}] {parent.name:<10} -> {p_sig}")
        if self.attrs:
            lines.append("Attributes       :")
            for k, v in self.attrs.items():
                lines.append(f"  {k:<14} : {v}")
        return "\n".join(lines)

    def __repr__(self):
        attr_keys = list(self.attrs.keys()) if self.attrs else []
        attrs_summary = f" | attrs={attr_keys}" if attr_keys else ""
        dtype_str = self.dtype.value if self.dtype else "?"
        return f"[{dtype_str}|{self.shape}{attrs_summary}] {self.op_type}({self.name})"


@dataclass(eq=False, frozen=True)
class Function:
    """
    A sub-graph with explicit parameters, invoked through OpType.CALL nodes.
    Parameters are OpType.INPUT nodes referenced from the body.
    """

    params: Sequence[TensorNode]
    body: TensorNode
    name: str = field(default_factory=lambda: f"fn_{str(uuid.uuid4())[:8]}")

    def __post_init__(self):
        object.__setattr__(self, "params", tuple(self.params))
        for p in self.params:
            if p.op_type != OpType.INPUT:
                raise ValueError(
                    f"Function '{self.name}' parameter '{p.name}' must be an Input node"
                )

    @property
    def param_dtypes(self) -> Tuple[Optional[DType], ...]:
        return tuple(p.dtype for p in self.params)

    def __repr__(self):
        params = ", ".join(p.name for p in self.params)
        return f"Function({self.name})({params})"
