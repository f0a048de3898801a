"""
Exception hierarchy for the price editor.

Input mistakes (bad price text, inverted date ranges) are never raised;
they come back as ValidationResult objects. These exceptions cover the
cases where a caller asked for something the current state cannot do.
"""


class PriceEditorError(Exception):
    """Base class for all price editor errors."""


class ContextError(PriceEditorError):
    """An EditingContext would violate its existing/clone invariant."""


class CatalogError(PriceEditorError):
    """Unknown product, price group, or SKU."""


class MatrixStateError(PriceEditorError):
    """The price matrix could not produce a snapshot."""


class WorkflowError(PriceEditorError):
    """Operation not allowed in the current workflow step."""


class CommitError(PriceEditorError):
    """The GTM repository rejected or failed a commit."""
