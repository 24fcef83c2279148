"""Exception taxonomy for twin model construction.

Every error is raised while a specification is built or handed to an engine,
never during estimation. All of them derive from :class:`TwinModelError`, which
is a ``ValueError`` so callers validating user input can catch it generically.
"""

from __future__ import annotations

__all__ = [
    "TwinModelError",
    "UnknownGroupError",
    "UnsupportedFamilyError",
    "InsufficientGroupsError",
    "GroupOrderMismatchError",
    "DuplicateGroupError",
    "CategoryCountError",
    "MissingParameterError",
]


class TwinModelError(ValueError):
    """Raised when a twin model request is inconsistent."""


class UnknownGroupError(TwinModelError):
    """Raised when a group label has no relatedness entry."""


class UnsupportedFamilyError(TwinModelError):
    """Raised when the model family selector is not recognized."""


class InsufficientGroupsError(TwinModelError):
    """Raised when the groups cannot identify the requested family."""


class GroupOrderMismatchError(TwinModelError):
    """Raised when a specification's group order differs from the data's."""


class DuplicateGroupError(TwinModelError):
    """Raised when one label is given with conflicting relatedness metadata."""


class CategoryCountError(TwinModelError):
    """Raised when an ordinal family gets an invalid number of categories."""


class MissingParameterError(TwinModelError, KeyError):
    """Raised when a free parameter label has no value."""

    def __str__(self) -> str:
        return ValueError.__str__(self)
