class NotFoundError(LookupError):
    """Resource is missing or owned by someone else; callers cannot tell which."""


class InvalidInputError(ValueError):
    """Request data is missing, mistyped, or outside its allowed range."""
