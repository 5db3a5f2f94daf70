"""Error taxonomy shared by the registries and the orchestrator."""


class RegistryError(Exception):
    """Base class for pipeline errors."""

    retryable: bool = False


class ValidationError(RegistryError):
    """A required identifier or input is missing or malformed. Never retried."""


class NotFoundError(RegistryError):
    """A referenced entity that should exist is absent."""


class TransientStoreError(RegistryError):
    """Store timeout or connection failure. Safe to retry with backoff."""

    retryable = True


class ExtractionUnavailable(RegistryError):
    """The extraction collaborator returned nothing usable.

    Callers treat this as "no new information", never as a fatal error.
    """
