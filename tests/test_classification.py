import pytest
from amp_graphs.ir.dtypes import DType
from amp_graphs.ir.graph import GraphBuilder
from amp_graphs.ops.atomic_types import OpType
from amp_graphs.compiler.classification import (
    Category,
    Classification,
    ClassificationRegistry,
    require_static_shape,
)
from amp_graphs.compiler.errors import (
    ClassificationError,
    InvalidRuleError,
    UnresolvedTypeError,
)


@pytest.fixture
def call_node():
    gb = GraphBuilder()
    x = gb.input("x", (4, 4))
    return gb.dot(x, x)


def _rule(category, accum=DType.FP16, out=DType.FP16):
    def evaluator(node, target):
        return Classification(category, accum, out)

    return evaluator


def test_unregistered_op_defaults_to_follow(call_node):
    registry = ClassificationRegistry()
    result = registry.resolve("NotRegistered", call_node, DType.FP16)
    assert result == Classification(Category.FOLLOW, DType.FP16, DType.FP16)


def test_default_uses_target_dtype(call_node):
    registry = ClassificationRegistry()
    result = registry.resolve(OpType.DOT, call_node, DType.BF16)
    assert result.accum_dtype == DType.BF16
    assert result.out_dtype == DType.BF16


def test_register_without_evaluator_fails():
    registry = ClassificationRegistry()
    with pytest.raises(InvalidRuleError) as exc_info:
        registry.register(OpType.DOT, 10, None)
    assert exc_info.value.op_type == OpType.DOT
    assert OpType.DOT not in registry


def test_register_non_callable_fails():
    registry = ClassificationRegistry()
    with pytest.raises(InvalidRuleError):
        registry.register(OpType.DOT, 10, "always")


def test_higher_priority_wins(call_node):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, _rule(Category.NEVER))
    registry.register(OpType.DOT, 5, _rule(Category.ALWAYS))

    result = registry.resolve(OpType.DOT, call_node, DType.FP16)
    assert result.category == Category.NEVER


def test_equal_priority_last_registered_wins(call_node):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 7, _rule(Category.NEVER))
    registry.register(OpType.DOT, 7, _rule(Category.ALWAYS))

    assert registry.resolve(OpType.DOT, call_node, DType.FP16).category == Category.ALWAYS

    registry.register(OpType.DOT, 7, _rule(Category.FOLLOW))
    assert registry.resolve(OpType.DOT, call_node, DType.FP16).category == Category.FOLLOW


def test_rules_coexist(call_node):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 1, _rule(Category.NEVER))
    registry.register(OpType.DOT, 2, _rule(Category.ALWAYS))

    rules = registry.rules_for(OpType.DOT)
    assert [r.priority for r in rules] == [1, 2]


def test_decorator_registers_all_ops(call_node):
    registry = ClassificationRegistry()

    @registry.rule(OpType.DOT, OpType.ADD, priority=3)
    def always(node, target):
        return Category.ALWAYS, target, target

    assert OpType.DOT in registry
    assert OpType.ADD in registry
    assert registry.rules_for(OpType.ADD)[0].priority == 3
    assert registry.resolve(OpType.ADD, call_node, DType.FP16).category == Category.ALWAYS


def test_tuple_results_and_string_dtypes_are_coerced(call_node):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, lambda node, t: ("always", "float32", "float16"))

    result = registry.resolve(OpType.DOT, call_node, DType.FP16)
    assert result == Classification(Category.ALWAYS, DType.FP32, DType.FP16)


@pytest.mark.parametrize(
    "bad_result",
    [
        None,
        (Category.ALWAYS, DType.FP16),
        ("sometimes", DType.FP16, DType.FP16),
        (Category.ALWAYS, "float17", DType.FP16),
    ],
)
def test_malformed_result_raises(call_node, bad_result):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, lambda node, t: bad_result)

    with pytest.raises(ClassificationError) as exc_info:
        registry.resolve(OpType.DOT, call_node, DType.FP16)
    assert exc_info.value.node_name == call_node.name


def test_evaluator_failure_is_wrapped(call_node):
    def broken(node, target):
        raise KeyError("kernel_size")

    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, broken)

    with pytest.raises(ClassificationError) as exc_info:
        registry.resolve(OpType.DOT, call_node, DType.FP16)
    err = exc_info.value
    assert err.op_type == OpType.DOT
    assert err.node_name == call_node.name
    assert isinstance(err.__cause__, KeyError)
    assert call_node.name in str(err)


def test_shape_dependent_rule_on_dynamic_shape():
    gb = GraphBuilder()
    x = gb.input("x", (None, 4))
    node = gb.dot(x, gb.input("w", (4, 4)))

    def big_matmuls_only(node, target):
        rows, _ = require_static_shape(node)
        category = Category.ALWAYS if rows >= 64 else Category.FOLLOW
        return category, target, target

    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, big_matmuls_only)

    with pytest.raises(UnresolvedTypeError):
        registry.resolve(OpType.DOT, node, DType.FP16)


def test_resolve_is_deterministic_and_does_not_mutate(call_node):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, _rule(Category.ALWAYS, DType.FP32, DType.FP16))
    attrs_before = dict(call_node.attrs)

    first = registry.resolve(OpType.DOT, call_node, DType.FP16)
    second = registry.resolve(OpType.DOT, call_node, DType.FP16)

    assert first == second
    assert dict(call_node.attrs) == attrs_before
    assert call_node.dtype == DType.FP32


def test_copy_is_independent(call_node):
    registry = ClassificationRegistry()
    registry.register(OpType.DOT, 10, _rule(Category.NEVER))

    derived = registry.copy()
    derived.register(OpType.DOT, 11, _rule(Category.ALWAYS))

    assert registry.resolve(OpType.DOT, call_node, DType.FP16).category == Category.NEVER
    assert derived.resolve(OpType.DOT, call_node, DType.FP16).category == Category.ALWAYS
