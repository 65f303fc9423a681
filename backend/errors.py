"""Error taxonomy shared by the scheduling core and the API layer."""


class SchedulingError(Exception):
    """Base class for every error raised by the review scheduling core."""


class ValidationError(SchedulingError):
    """Input was rejected before any state was read (bad difficulty, malformed id)."""


class NotFoundError(SchedulingError):
    """A card or learning record that must exist does not."""


class StoreUnavailableError(SchedulingError):
    """The persistence layer failed transiently; nothing was committed."""


class GenerationError(Exception):
    """The content-generation provider returned something we could not use."""


class ConflictError(SchedulingError):
    """A write collided with existing data (duplicate username, concurrent first review)."""
