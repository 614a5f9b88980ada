class OpType:
    # --- Input ---
    INPUT = "Input"
    CONSTANT = "Constant"

    # --- Structure ---
    TUPLE = "Tuple"
    TUPLE_GET_ITEM = "TupleGetItem"
    CALL = "Call"

    # --- Math ---
    ADD = "Add"
    MUL = "Mul"
    DIVIDE = "Divide"
    DOT = "Dot"
    SQRT = "Sqrt"
    SIN = "Sin"
    COS = "Cos"
    EXP = "Exp"
    LOG = "Log"
    NEGATE = "Negate"
    POWER = "Power"

    # --- Comparison ---
    LESS = "Less"
    GREATER = "Greater"

    # --- Reduction ---
    SUM = "Sum"
    MAX = "Max"
    SORT = "Sort"

    # --- Manipulation ---
    RESHAPE = "Reshape"
    PERMUTE = "Permute"
    SLICE = "Slice"
    CONCAT = "Concat"
    CAST = "Cast"
    REPEAT = "Repeat"
    ARANGE = "Arange"
    TRIU = "Triu"
    GATHER = "Gather"
    FILL = "Fill"
    WHERE = "Where"

    @classmethod
    def is_atomic(cls, op_type: str) -> bool:
        """Returns True if the op_type is a fundamental atomic operation."""
        # We filter out internal methods and properties
        return op_type in [
            v
            for k, v in cls.__dict__.items()
            if not k.startswith("_") and isinstance(v, str)
        ]
