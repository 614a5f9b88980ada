import pytest
import numpy as np

from amp_graphs.ir.dtypes import DType
from amp_graphs.ir.graph import GraphBuilder
from amp_graphs.backend.reference import evaluate_graph, evaluate_function
from amp_graphs.backend.numpy_kernels import get_kernel, np_dtype
from amp_graphs.compiler.mixed_precision import to_mixed_precision
from amp_graphs.ops.atomic_types import OpType


@pytest.fixture
def rng():
    return np.random.default_rng(0)


def _mlp(gb):
    x = gb.input("x", (8, 16))
    w1 = gb.input("w1", (16, 32))
    w2 = gb.input("w2", (32, 4))
    h = gb.relu(gb.dot(x, w1))
    return gb.softmax(gb.dot(h, w2))


def test_rewritten_mlp_matches_original(rng):
    gb = GraphBuilder()
    root = _mlp(gb)
    inputs = {
        "x": rng.standard_normal((8, 16)).astype(np.float32),
        "w1": (rng.standard_normal((16, 32)) * 0.25).astype(np.float32),
        "w2": (rng.standard_normal((32, 4)) * 0.25).astype(np.float32),
    }

    expected = evaluate_graph(root, inputs)
    actual = evaluate_graph(to_mixed_precision(root), inputs)

    assert actual.dtype == np.float32
    np.testing.assert_allclose(actual, expected, rtol=1e-2, atol=1e-3)


def test_mixed_graph_really_runs_in_half(rng):
    gb = GraphBuilder()
    x = gb.input("x", (4, 4))
    root = gb.dot(x, x)
    data = {"x": rng.standard_normal((4, 4)).astype(np.float32)}

    out = evaluate_graph(to_mixed_precision(root, keep_orig_output_dtype=False), data)

    assert out.dtype == np.float16


def test_wide_accumulation_avoids_overflow():
    # Each product fits in fp16 but their sum does not.
    gb = GraphBuilder()
    a = gb.input("a", (1, 64), DType.FP16)
    b = gb.input("b", (64, 1), DType.FP16)
    narrow = gb.dot(a, b, accum_dtype=DType.FP16, out_dtype=DType.FP32)
    wide = gb.dot(a, b, accum_dtype=DType.FP32, out_dtype=DType.FP32)
    data = {
        "a": np.full((1, 64), 40.0, dtype=np.float16),
        "b": np.full((64, 1), 40.0, dtype=np.float16),
    }

    assert np.isinf(evaluate_graph(narrow, data)).all()
    np.testing.assert_allclose(evaluate_graph(wide, data), [[64 * 1600.0]])


def test_never_ops_are_evaluated_in_base():
    gb = GraphBuilder()
    x = gb.input("x", (1, 4))
    root = gb.sum(gb.exp(gb.dot(x, gb.input("w", (4, 4)))), axis=-1)
    data = {
        "x": np.full((1, 4), 3.0, dtype=np.float32),
        "w": np.ones((4, 4), dtype=np.float32),
    }

    # exp(12) * 4 overflows fp16
    expected = evaluate_graph(root, data)
    actual = evaluate_graph(to_mixed_precision(root), data)

    assert np.isfinite(actual).all()
    np.testing.assert_allclose(actual, expected, rtol=1e-3)


def test_tuple_and_function_results(rng):
    gb = GraphBuilder()
    p = gb.param("p", (4, 4))
    fn = gb.function([p], gb.tanh(gb.dot(p, p)))
    x = gb.input("x", (4, 4))
    root = gb.tuple([gb.call(fn, [x]), gb.exp(x)])
    data = {"x": (rng.standard_normal((4, 4)) * 0.5).astype(np.float32)}

    expected = evaluate_graph(root, data)
    actual = evaluate_graph(to_mixed_precision(root), data)

    assert isinstance(actual, tuple)
    for got, want in zip(actual, expected):
        assert got.dtype == np.float32
        np.testing.assert_allclose(got, want, rtol=1e-2, atol=1e-3)

    direct = evaluate_function(to_mixed_precision(fn), [data["x"]])
    np.testing.assert_allclose(direct, expected[0], rtol=1e-2, atol=1e-3)


def test_missing_input_is_reported():
    gb = GraphBuilder()
    x = gb.input("x", (2,))
    with pytest.raises(ValueError, match="x"):
        evaluate_graph(gb.exp(x), {})


def test_unknown_op_has_no_kernel():
    gb = GraphBuilder()
    x = gb.input("x", (2,))
    root = gb.op("VendorKernel", [x])
    assert get_kernel("VendorKernel") is None
    with pytest.raises(NotImplementedError):
        evaluate_graph(root, {"x": np.zeros(2, dtype=np.float32)})


def test_bf16_has_no_numpy_dtype():
    assert np_dtype(DType.FP16) == np.float16
    with pytest.raises(NotImplementedError):
        np_dtype(DType.BF16)


def test_cast_kernel_uses_target():
    kernel = get_kernel(OpType.CAST)
    out = kernel([np.ones(3, dtype=np.float32)], {"to": DType.FP16})
    assert out.dtype == np.float16
