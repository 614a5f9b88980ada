from enum import Enum
from dataclasses import dataclass
from typing import Tuple, Optional


class DType(Enum):
    FP64 = "float64"
    FP32 = "float32"
    FP16 = "float16"
    BF16 = "bfloat16"
    INT64 = "int64"
    INT32 = "int32"
    INT8 = "int8"
    BOOL = "bool"

    @property
    def is_floating(self) -> bool:
        return self in (DType.FP64, DType.FP32, DType.FP16, DType.BF16)

    @classmethod
    def coerce(cls, value) -> "DType":
        """Accepts a DType or its string name ("float16")."""
        if isinstance(value, DType):
            return value
        if isinstance(value, str):
            return cls(value)
        raise ValueError(f"Cannot interpret {value!r} as a DType")


def is_floating(dtype: Optional[DType]) -> bool:
    return dtype is not None and dtype.is_floating


class Backend(Enum):
    CPU_NUMPY = "cpu_numpy"
    CPU_TORCH = "cpu_torch"
    GPU_TORCH = "gpu_torch"


@dataclass(frozen=True)
class TensorSignature:
    """
    Represents the Type, Shape, and Backend state of a tensor.

    - shape=None: unknown shape
    - dtype=None: not yet annotated by type inference
    """

    dtype: Optional[DType]
    shape: Optional[Tuple[Optional[int], ...]] = None
    backend: Optional[Backend] = None

    def __repr__(self):
        shape_str = "*"
        if self.shape is not None:
            shape_str = ",".join(str(d) if d is not None else "*" for d in self.shape)

        dtype_str = self.dtype.value if self.dtype else "?"
        backend_str = self.backend.value if self.backend else "*"
        return f"<{dtype_str} [{shape_str}] @ {backend_str}>"

    @property
    def is_static(self) -> bool:
        return self.shape is not None and all(d is not None for d in self.shape)
