"""Exception hierarchy for the recruitment engine."""


class RecruitEngineError(Exception):
    """Base class for all engine errors."""


class DocumentNotFoundError(RecruitEngineError):
    """Raised when a keyed document does not exist."""


class ConcurrentUpdateError(RecruitEngineError):
    """Raised when a compare-and-set write loses against a concurrent writer."""


class UnknownOriginError(RecruitEngineError):
    """Raised when an origin cannot be mapped to a tenant and no default is allowed."""


class CandidateNotFoundError(RecruitEngineError):
    """Raised when scheduling for a candidate record that does not exist."""


class BookingConflictError(RecruitEngineError):
    """Raised when a vacancy has no open slot left to reserve."""


class CalendarError(RecruitEngineError):
    """Raised when the external calendar fails or times out."""


class LanguageModelError(RecruitEngineError):
    """Raised when the language model fails or times out."""


class MessagingError(RecruitEngineError):
    """Raised when the outbound transport rejects a message."""


class StorageError(RecruitEngineError):
    """Raised when the document store backend fails."""
