# Expose main components for easy access
from .ir.node import TensorNode, Function
from .ir.dtypes import DType
from .ir.graph import GraphBuilder
from .ops.atomic_types import OpType
from .compiler.classification import Category, ClassificationRegistry
from .compiler.default_rules import default_registry
from .compiler.mixed_precision import to_mixed_precision
