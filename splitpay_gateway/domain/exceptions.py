"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Request input is malformed or violates a business rule"""

    pass


class SplitValidationError(ValidationError):
    """Shares or allocations do not reconcile with the amount being split"""

    pass


class NotFoundError(DomainException):
    """Referenced collection, payer or payment does not exist"""

    pass


class AlreadyProcessedError(DomainException):
    """Entity exists but has already left the state the operation requires"""

    pass


class InvalidTransitionError(DomainException):
    """Status change is not allowed by the state machine"""

    pass


class ProviderError(DomainException):
    """Payment provider returned an error or is unavailable"""

    pass


class UnsupportedProviderError(ProviderError):
    """No adapter is registered for the requested provider"""

    def __init__(self, provider: str):
        super().__init__(f"Unsupported payment provider: {provider}")
        self.provider = provider


class MissingMetadataError(DomainException):
    """Provider event lacks the metadata needed to locate the payer or payment"""

    pass


class WebhookSignatureError(DomainException):
    """Webhook payload failed signature verification"""

    pass


class SlugGenerationError(DomainException):
    """Could not issue a unique payment link slug"""

    pass
