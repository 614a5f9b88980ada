DEBUG_AMP = False
DEBUG_DETAILED = False

# Priority of the bundled classification rules. Register at a higher level to
# override them.
DEFAULT_RULE_PRIORITY = 10

# Name prefix of cast nodes inserted by the mixed-precision rewrite
CAST_NAME_PREFIX = "amp_cast"
