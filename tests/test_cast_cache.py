from amp_graphs.ir.node import TensorNode
from amp_graphs.ir.dtypes import DType
from amp_graphs.ops.atomic_types import OpType
from amp_graphs.compiler.cast_cache import CastCache


def _make_cast(calls):
    def make_cast(producer, dtype):
        calls.append((producer, dtype))
        return TensorNode(OpType.CAST, dtype, [producer], producer.shape, attrs={"to": dtype})

    return make_cast


def test_get_or_insert_is_idempotent():
    cache = CastCache()
    calls = []
    x = TensorNode(OpType.INPUT, DType.FP32, [], (2,), "x")

    first = cache.get_or_insert(x, DType.FP16, _make_cast(calls))
    second = cache.get_or_insert(x, DType.FP16, _make_cast(calls))

    assert first is second
    assert len(calls) == 1
    assert len(cache) == 1
    assert (x, DType.FP16) in cache


def test_keys_distinguish_dtype_and_producer():
    cache = CastCache()
    calls = []
    x = TensorNode(OpType.INPUT, DType.FP32, [], (2,), "x")
    # Same name and type, different node
    x_twin = TensorNode(OpType.INPUT, DType.FP32, [], (2,), "x")

    to_fp16 = cache.get_or_insert(x, DType.FP16, _make_cast(calls))
    to_bf16 = cache.get_or_insert(x, DType.BF16, _make_cast(calls))
    twin_fp16 = cache.get_or_insert(x_twin, DType.FP16, _make_cast(calls))

    assert len({id(to_fp16), id(to_bf16), id(twin_fp16)}) == 3
    assert len(cache) == 3
    assert set(map(id, cache.casts())) == {id(to_fp16), id(to_bf16), id(twin_fp16)}
