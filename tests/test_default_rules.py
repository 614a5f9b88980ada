import pytest
from amp_graphs.ir.dtypes import DType
from amp_graphs.ir.graph import GraphBuilder
from amp_graphs.ops.atomic_types import OpType
from amp_graphs.ops.registry import is_known_op
from amp_graphs.compiler.classification import Category, Classification
from amp_graphs.compiler.default_rules import (
    DEFAULT_ALWAYS_LIST,
    DEFAULT_FOLLOW_LIST,
    DEFAULT_NEVER_LIST,
    default_registry,
    generic_out_dtypes,
)


def test_lists_are_disjoint_and_known():
    lists = [DEFAULT_ALWAYS_LIST, DEFAULT_FOLLOW_LIST, DEFAULT_NEVER_LIST]
    seen = set()
    for ops in lists:
        for op in ops:
            assert op not in seen, f"{op} is in more than one list"
            assert is_known_op(op)
            seen.add(op)


@pytest.mark.parametrize(
    "ops, category",
    [
        (DEFAULT_ALWAYS_LIST, Category.ALWAYS),
        (DEFAULT_FOLLOW_LIST, Category.FOLLOW),
        (DEFAULT_NEVER_LIST, Category.NEVER),
    ],
)
def test_every_listed_op_resolves_to_its_category(ops, category):
    registry = default_registry()
    gb = GraphBuilder()
    x = gb.input("x", (4, 4))
    for op in ops:
        node = gb.op(op, [x, x])
        assert registry.resolve(op, node, DType.FP16).category == category


def test_default_registry_is_fresh():
    first = default_registry()
    first.register(OpType.EXP, 99, lambda n, t: (Category.ALWAYS, t, t))

    gb = GraphBuilder()
    node = gb.exp(gb.input("x", (4,)))
    assert default_registry().resolve(OpType.EXP, node, DType.FP16).category == Category.NEVER


def test_matmul_accumulates_in_original_precision():
    gb = GraphBuilder()
    x = gb.input("x", (4, 4))
    node = gb.dot(x, x)

    result = default_registry().resolve(OpType.DOT, node, DType.FP16)
    assert result == Classification(Category.ALWAYS, DType.FP32, DType.FP16)


def test_matmul_keeps_declared_accumulator():
    gb = GraphBuilder()
    x = gb.input("x", (4, 4), DType.FP16)
    node = gb.dot(x, x, accum_dtype=DType.BF16)

    assert generic_out_dtypes(node, DType.FP16) == (DType.BF16, DType.FP16)


def test_unsupported_accumulator_falls_back_to_mixed():
    gb = GraphBuilder()
    x = gb.input("x", (4, 4), DType.FP64)
    node = gb.dot(x, x)

    # Dot cannot accumulate in fp64
    assert generic_out_dtypes(node, DType.FP16) == (DType.FP16, DType.FP16)


def test_ops_without_accumulator_use_mixed():
    gb = GraphBuilder()
    x = gb.input("x", (4,))
    assert generic_out_dtypes(gb.add(x, x), DType.BF16) == (DType.BF16, DType.BF16)
