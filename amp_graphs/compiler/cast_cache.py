from typing import Callable, Dict, List, Tuple
from ..ir.dtypes import DType
from ..ir.node import TensorNode


class CastCache:
    """
    One cast node per (rewritten producer, target dtype).

    A producer with several consumers that all need the same dtype gets a
    single shared cast instead of one per consumer.
    """

    def __init__(self):
        self._casts: Dict[Tuple[TensorNode, DType], TensorNode] = {}

    def get_or_insert(
        self,
        producer: TensorNode,
        target_dtype: DType,
        make_cast: Callable[[TensorNode, DType], TensorNode],
    ) -> TensorNode:
        key = (producer, target_dtype)
        cast_node = self._casts.get(key)
        if cast_node is None:
            cast_node = make_cast(producer, target_dtype)
            self._casts[key] = cast_node
        return cast_node

    def __contains__(self, key: Tuple[TensorNode, DType]) -> bool:
        return key in self._casts

    def __len__(self) -> int:
        return len(self._casts)

    def casts(self) -> List[TensorNode]:
        return list(self._casts.values())
