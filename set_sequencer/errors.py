"""Errors raised synchronously to callers of the sequencing operations."""


class SequencingError(ValueError):
    """Invalid request configuration (bad energy curve, empty pool, ...)."""


class TrackNotFoundError(SequencingError):
    """A requested track id is not in the track store."""

    def __init__(self, track_id: str):
        super().__init__(f"Track '{track_id}' not found")
        self.track_id = track_id
