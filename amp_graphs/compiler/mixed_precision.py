"""
File: amp_graphs/compiler/mixed_precision.py

Automatic mixed-precision rewrite.

Walks a typed graph once in post-order and rebuilds it so that operators run
in the mixed dtype where their classification allows it, inserting Cast nodes
wherever a producer's dtype differs from what its consumer needs.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from tqdm import tqdm

from ..config import CAST_NAME_PREFIX, DEBUG_AMP, DEBUG_DETAILED
from ..ir.dtypes import DType, is_floating
from ..ir.graph import topological_sort
from ..ir.node import Function, TensorNode
from ..ops.atomic_types import OpType
from ..ops.registry import get_op_schema, is_known_op

# Ensure the operator schemas are registered
from ..ops import schemas  # noqa: F401
from .classification import Category, Classification, ClassificationRegistry
from .default_rules import default_registry
from .errors import (
    AttributeReconstructionError,
    CastInsertionError,
    ClassificationError,
    UnresolvedTypeError,
)
from .rewrite_context import Replacement, RewriteContext

logger = logging.getLogger(__name__)


@dataclass
class RewriteStats:
    visited: int = 0
    always: int = 0
    follow: int = 0
    never: int = 0
    passthrough: int = 0
    casts: int = 0

    def count(self, category: Category):
        setattr(self, category.value, getattr(self, category.value) + 1)


def _float_dtype(dtype: Optional[DType]) -> Optional[DType]:
    return dtype if is_floating(dtype) else None


class MixedPrecisionRewriter:
    """
    Rewrites graphs under one RewriteContext. Every original node is visited
    once; its replacement is recorded before any consumer is processed, so
    shared sub-graphs are rewritten once and shared again in the output.
    """

    def __init__(self, context: RewriteContext, keep_orig_output_dtype: bool = True):
        self.ctx = context
        self.keep_orig_output_dtype = keep_orig_output_dtype
        self.stats = RewriteStats()

    # --- Entry points ---

    def rewrite(self, root: TensorNode) -> TensorNode:
        new_root = self._rewrite_graph(root)
        if self.keep_orig_output_dtype:
            new_root = self._restore_outputs(root, new_root)
        self._log_summary(root.name)
        return new_root

    def rewrite_function(self, fn: Function) -> Function:
        """
        Rewrites the body of `fn`. The declared signature is kept: outputs are
        cast back to their original dtype.
        """
        new_fn = self._rewrite_function(fn)
        self._log_summary(fn.name)
        return new_fn

    def _rewrite_function(self, fn: Function) -> Function:
        if fn in self.ctx.functions:
            return self.ctx.functions[fn]
        body = self._rewrite_graph(fn.body)
        body = self._restore_outputs(fn.body, body)
        new_fn = fn if body is fn.body else Function(fn.params, body, fn.name)
        self.ctx.functions[fn] = new_fn
        return new_fn

    # --- Traversal ---

    def _rewrite_graph(self, root: TensorNode) -> TensorNode:
        nodes = topological_sort(root)
        with tqdm(nodes, desc="amp rewrite", disable=not DEBUG_AMP) as pbar:
            for node in pbar:
                if self.ctx.is_visited(node):
                    continue
                self.ctx.check_cancelled(node)
                self._visit(node)
        return self.ctx.lookup(root).node

    def _visit(self, node: TensorNode):
        self.stats.visited += 1
        op = node.op_type

        if node.is_leaf:
            self.stats.passthrough += 1
            self.ctx.record(node, node, _float_dtype(node.dtype))
        elif op == OpType.TUPLE:
            self.stats.passthrough += 1
            self.ctx.record(node, self._rebuild(node, self._arg_nodes(node)), None)
        elif op == OpType.TUPLE_GET_ITEM:
            self.stats.passthrough += 1
            self._visit_get_item(node)
        elif op == OpType.CALL:
            self.stats.passthrough += 1
            self._visit_call(node)
        elif op == OpType.CAST:
            self.stats.passthrough += 1
            self._visit_cast(node)
        elif not is_known_op(op):
            # Opaque op: not classified, its arguments keep their original dtypes.
            self.stats.passthrough += 1
            declared = [p.dtype for p in node.parents]
            new = self._rebuild(node, self._reconcile(self._args(node), declared))
            self.ctx.record(node, new, _float_dtype(node.dtype))
        else:
            self._visit_op(node)

    def _args(self, node: TensorNode) -> List[Replacement]:
        return [self.ctx.lookup(p) for p in node.parents]

    def _arg_nodes(self, node: TensorNode) -> List[TensorNode]:
        return [rep.node for rep in self._args(node)]

    def _reconcile(
        self, args: List[Replacement], declared: List[Optional[DType]]
    ) -> List[TensorNode]:
        """Casts floating arguments back to the dtypes a boundary declares."""
        parents = []
        for rep, dtype in zip(args, declared):
            if (
                rep.float_dtype is not None
                and is_floating(dtype)
                and rep.float_dtype != dtype
            ):
                parents.append(self._cast(rep.node, dtype, boundary=True))
            else:
                parents.append(rep.node)
        return parents

    @staticmethod
    def _rebuild(node: TensorNode, parents: List[TensorNode], **changes) -> TensorNode:
        unchanged = all(a is b for a, b in zip(parents, node.parents)) and all(
            getattr(node, k) is v for k, v in changes.items()
        )
        if unchanged:
            return node
        return node.replace(parents=parents, **changes)

    # --- Pass-through nodes ---

    def _visit_get_item(self, node: TensorNode):
        (tup,) = self._arg_nodes(node)
        index = node.attrs.get("index")
        dtype = node.dtype
        if tup.op_type == OpType.TUPLE:
            if not isinstance(index, int) or not 0 <= index < len(tup.parents):
                raise UnresolvedTypeError(
                    f"Index {index!r} out of range for tuple '{tup.name}'",
                    op_type=node.op_type,
                    node_name=node.name,
                )
            dtype = tup.parents[index].dtype
        new = self._rebuild(node, [tup], dtype=dtype)
        self.ctx.record(node, new, _float_dtype(dtype))

    def _visit_call(self, node: TensorNode):
        fn = node.attrs.get("function")
        if not isinstance(fn, Function):
            raise UnresolvedTypeError(
                "Call node has no function attribute",
                op_type=node.op_type,
                node_name=node.name,
            )
        new_fn = self._rewrite_function(fn)
        parents = self._reconcile(self._args(node), list(fn.param_dtypes))

        if new_fn is fn:
            new = self._rebuild(node, parents)
        else:
            attrs = dict(node.attrs)
            attrs["function"] = new_fn
            new = node.replace(parents=parents, attrs=attrs)
        self.ctx.record(node, new, _float_dtype(node.dtype))

    def _visit_cast(self, node: TensorNode):
        # Casts already in the graph are explicit user intent: keep the target.
        to = DType.coerce(node.attrs.get("to", node.dtype))
        new = self._rebuild(node, self._arg_nodes(node), dtype=to)
        self.ctx.record(node, new, _float_dtype(to))

    # --- Operator calls ---

    def _visit_op(self, node: TensorNode):
        ctx = self.ctx
        target, base = ctx.mixed_dtype, ctx.base_dtype

        cls = ctx.registry.resolve(node.op_type, node, target)
        self._validate(cls, node)
        self.stats.count(cls.category)

        args = self._args(node)
        float_args = [i for i, rep in enumerate(args) if self._is_float_arg(node, rep)]

        if not float_args:
            # Nothing to convert; the op keeps its original precision.
            new = self._rebuild(node, [rep.node for rep in args])
            ctx.record(node, new, _float_dtype(node.dtype))
            return

        if cls.category == Category.ALWAYS:
            required = target
        elif cls.category == Category.NEVER:
            required = base
        elif all(args[i].float_dtype == target for i in float_args):
            required = target
        else:
            required = base

        parents = [rep.node for rep in args]
        for i in float_args:
            if args[i].float_dtype != required:
                parents[i] = self._cast(args[i].node, required)

        out_float = is_floating(node.dtype)
        in_mixed = required == target
        if in_mixed:
            attrs = self._mixed_attrs(node, cls, out_float)
            dtype = cls.out_dtype if out_float else node.dtype
        else:
            attrs = self._base_attrs(node)
            dtype = base if out_float else node.dtype

        new = self._rebuild(node, parents, dtype=dtype, attrs=attrs)
        ctx.record(node, new, _float_dtype(dtype))

        logger.debug(
            "%s %s: %s, inputs in %s, output %s",
            node.op_type,
            node.name,
            cls.category.name,
            required.value,
            dtype.value if dtype else "?",
        )
        if DEBUG_DETAILED:
            logger.debug("%s", new.get_details())

    def _is_float_arg(self, node: TensorNode, rep: Replacement) -> bool:
        arg = rep.node
        if arg.op_type == OpType.TUPLE:
            raise UnresolvedTypeError(
                f"Argument '{arg.name}' is a tuple and has no single element dtype",
                op_type=node.op_type,
                node_name=node.name,
            )
        if arg.dtype is None:
            raise UnresolvedTypeError(
                f"Argument '{arg.name}' has no dtype; run type inference first",
                op_type=node.op_type,
                node_name=node.name,
            )
        return rep.float_dtype is not None

    def _validate(self, cls: Classification, node: TensorNode):
        allowed = (self.ctx.base_dtype, self.ctx.mixed_dtype)
        for role, dtype in (("accumulation", cls.accum_dtype), ("output", cls.out_dtype)):
            if dtype not in allowed:
                raise ClassificationError(
                    f"{role.capitalize()} dtype must be {allowed[0].value} "
                    f"or {allowed[1].value}",
                    op_type=node.op_type,
                    node_name=node.name,
                    dtype=dtype,
                )

    def _mixed_attrs(self, node: TensorNode, cls: Classification, out_float: bool):
        schema = get_op_schema(node.op_type)
        target = self.ctx.mixed_dtype
        overrides = {}

        if schema.accum_dtype_attr is not None:
            if not schema.accepts_accum_dtype(cls.accum_dtype):
                raise AttributeReconstructionError(
                    "Operator does not accept this accumulation dtype",
                    op_type=node.op_type,
                    node_name=node.name,
                    dtype=cls.accum_dtype,
                )
            overrides[schema.accum_dtype_attr] = cls.accum_dtype
        elif cls.accum_dtype != target:
            raise AttributeReconstructionError(
                "Operator has no accumulation dtype attribute",
                op_type=node.op_type,
                node_name=node.name,
                dtype=cls.accum_dtype,
            )

        if out_float:
            if schema.out_dtype_attr is not None:
                overrides[schema.out_dtype_attr] = cls.out_dtype
            elif cls.out_dtype != target:
                raise AttributeReconstructionError(
                    "Operator has no output dtype attribute",
                    op_type=node.op_type,
                    node_name=node.name,
                    dtype=cls.out_dtype,
                )

        if not overrides:
            return node.attrs
        attrs = dict(node.attrs)
        attrs.update(overrides)
        return attrs

    def _base_attrs(self, node: TensorNode):
        """
        Attributes for a node running in the base dtype. A declared output
        dtype other than base, or an accumulator in the mixed dtype, is reset
        to base; wider accumulators are kept.
        """
        schema = get_op_schema(node.op_type)
        base, target = self.ctx.base_dtype, self.ctx.mixed_dtype
        overrides = {}
        drop = None

        accum = node.attrs.get(schema.accum_dtype_attr) if schema.accum_dtype_attr else None
        if accum is not None and DType.coerce(accum) == target:
            if schema.accepts_accum_dtype(base):
                overrides[schema.accum_dtype_attr] = base
            else:
                drop = schema.accum_dtype_attr

        out = node.attrs.get(schema.out_dtype_attr) if schema.out_dtype_attr else None
        if out is not None and DType.coerce(out) != base:
            overrides[schema.out_dtype_attr] = base

        if not overrides and drop is None:
            return node.attrs
        attrs = dict(node.attrs)
        attrs.update(overrides)
        attrs.pop(drop, None)
        return attrs

    # --- Casts ---

    def _cast(self, producer: TensorNode, dtype: DType, boundary: bool = False) -> TensorNode:
        """
        Shared cast of `producer` to `dtype`. Casts inside the graph may only
        target the base or mixed dtype; boundary casts restore a declared
        signature and may target any floating dtype.
        """
        if not is_floating(producer.dtype):
            raise CastInsertionError(
                f"Cannot cast non-floating producer '{producer.name}'",
                op_type=producer.op_type,
                node_name=producer.name,
                dtype=producer.dtype,
            )
        allowed = (self.ctx.base_dtype, self.ctx.mixed_dtype)
        if not is_floating(dtype) or (not boundary and dtype not in allowed):
            raise CastInsertionError(
                "Cast target must be the base or mixed dtype",
                op_type=producer.op_type,
                node_name=producer.name,
                dtype=dtype,
            )
        return self.ctx.cast_cache.get_or_insert(producer, dtype, self._make_cast)

    @staticmethod
    def _make_cast(producer: TensorNode, dtype: DType) -> TensorNode:
        logger.debug("Cast %s: %s -> %s", producer.name, producer.dtype.value, dtype.value)
        return TensorNode(
            OpType.CAST,
            dtype,
            [producer],
            producer.shape,
            name=f"{CAST_NAME_PREFIX}_{producer.name}_{dtype.value}",
            attrs={"to": dtype},
            backend=producer.backend,
        )

    # --- Output signature ---

    def _restore_outputs(self, original: TensorNode, new: TensorNode) -> TensorNode:
        if original.op_type == OpType.TUPLE and new.op_type == OpType.TUPLE:
            fields = [self._restore_outputs(o, n) for o, n in zip(original.parents, new.parents)]
            return self._rebuild(new, fields)
        if (
            is_floating(original.dtype)
            and is_floating(new.dtype)
            and new.dtype != original.dtype
        ):
            return self._cast(new, original.dtype, boundary=True)
        return new

    def _log_summary(self, graph_name: str):
        self.stats.casts = len(self.ctx.cast_cache)
        s = self.stats
        logger.info(
            "Mixed precision (%s -> %s) on '%s': %d nodes, %d always, %d follow, "
            "%d never, %d pass-through, %d casts",
            self.ctx.base_dtype.value,
            self.ctx.mixed_dtype.value,
            graph_name,
            s.visited,
            s.always,
            s.follow,
            s.never,
            s.passthrough,
            s.casts,
        )


def to_mixed_precision(
    graph: Union[TensorNode, Function],
    mixed_dtype: Union[DType, str] = DType.FP16,
    base_dtype: Union[DType, str] = DType.FP32,
    registry: Optional[ClassificationRegistry] = None,
    keep_orig_output_dtype: bool = True,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> Union[TensorNode, Function]:
    """
    Returns a mixed-precision version of `graph` (a root node or a Function).

    The input graph is left untouched. `registry` defaults to a fresh copy of
    the bundled rules. With `keep_orig_output_dtype`, graph outputs are cast
    back to their original dtype so the external signature does not change.
    """
    if registry is None:
        registry = default_registry()
    ctx = RewriteContext(
        DType.coerce(mixed_dtype),
        DType.coerce(base_dtype),
        registry,
        should_cancel=should_cancel,
    )
    rewriter = MixedPrecisionRewriter(ctx, keep_orig_output_dtype)
    if isinstance(graph, Function):
        return rewriter.rewrite_function(graph)
    return rewriter.rewrite(graph)
