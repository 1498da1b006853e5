"""Error taxonomy for the sequence build pipeline."""


class SequenceManagerError(Exception):
    """Base class for every error reported to callers."""


class IngestError(SequenceManagerError):
    """Bad or insufficient source material."""


class TrackParseError(SequenceManagerError):
    """GPS track could not be parsed."""


class EmptyTrackError(SequenceManagerError):
    """GPS track has no points."""


class MissingGeotagError(SequenceManagerError):
    """Photo has no position and there is no track to borrow one from."""

    def __init__(self, path: str):
        super().__init__(f"No GPS position for {path} and no track was supplied.")
        self.path = path


class CompositeError(SequenceManagerError):
    """Nadir logo could not be scaled, composited or written."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(f"{message} ({path})" if path else message)
        self.path = path


class ManifestIOError(SequenceManagerError):
    """Manifest could not be read or written."""


class ExternalServiceError(SequenceManagerError):
    """Destination service call failed."""


class BuildCancelledError(SequenceManagerError):
    """A running build was asked to stop."""
