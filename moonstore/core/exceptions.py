"""Error taxonomy for the storage, presence and reconciliation layer."""


class MoonStoreError(Exception):
    """Base class for all errors raised by the core."""


class ValidationError(MoonStoreError):
    """Malformed input, never retried."""


class AlreadyExists(MoonStoreError):  # noqa: N818 Name is part of the public contract
    """The entity being created already exists."""


class NotFound(MoonStoreError):  # noqa: N818 Name is part of the public contract
    """The entity is absent where absence is an error."""


class BackendUnavailable(MoonStoreError):  # noqa: N818 Name is part of the public contract
    """The storage backend could not be reached after retrying."""

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        """Keep hold of the error from the final attempt."""
        super().__init__(message)
        self.last_error = last_error


class UpstreamLookupFailed(MoonStoreError):  # noqa: N818 Name is part of the public contract
    """A catalog lookup failed, the affected record is left as it was."""

    def __init__(self, source: str, external_id: str, reason: str) -> None:
        """Record which catalog entry failed and why."""
        super().__init__(f"Lookup of {source}+{external_id} failed: {reason}")
        self.source = source
        self.external_id = external_id
        self.reason = reason
