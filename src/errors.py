class LoweringError(Exception):
    """Base class for errors raised while lowering tensor operations."""


class InvalidArgumentError(LoweringError, ValueError):
    """An operation argument is malformed: bad axis, bad flag type, bad arity."""


class InternalInconsistencyError(LoweringError, RuntimeError):
    """A caller broke the lowering contract; generated code would be mis-shaped."""
