class SourceUnavailable(Exception):
    """One of the external data sources could not be fetched or decoded."""

    def __init__(self, source):
        self.source = source
        super().__init__(f"Could not fetch data from {source} API")


class InternalFailure(Exception):
    """Schema, transaction or store error during a refresh run."""
