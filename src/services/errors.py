"""Error taxonomy shared by the trend pipeline services."""


class TrendScoutError(Exception):
    """Base error for the trend pipeline."""


class UpstreamUnavailableError(TrendScoutError):
    """A search, storage or model provider failed or answered non-2xx."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class MalformedResponseError(TrendScoutError):
    """Model output did not contain the expected structured payload."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class MissingReferenceError(TrendScoutError):
    """A foreign key could not be resolved and no placeholder could be created."""


class PersistenceError(TrendScoutError):
    """A database write did not produce a readable row."""


class EmptyBatchError(TrendScoutError):
    """A stage produced nothing for the next stage to work on."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(message)


class WorkflowError(TrendScoutError):
    """An unrecovered failure that ended a workflow run."""

    def __init__(self, stage: str, message: str, run_id: str | None = None):
        self.stage = stage
        self.run_id = run_id
        super().__init__(message)
