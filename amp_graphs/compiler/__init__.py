from .classification import (
    Category,
    Classification,
    ClassificationRegistry,
    require_static_shape,
)
from .cast_cache import CastCache
from .rewrite_context import RewriteContext
from .default_rules import default_registry, register_default_rules
from .mixed_precision import MixedPrecisionRewriter, to_mixed_precision
from .errors import (
    AmpError,
    InvalidRuleError,
    ClassificationError,
    CastInsertionError,
    UnresolvedTypeError,
    AttributeReconstructionError,
    RewriteCancelledError,
)
