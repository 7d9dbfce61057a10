class StorageUnavailableError(Exception):
    """Backing store (session or idempotency) could not be reached."""


class StaleSessionError(Exception):
    def __init__(self, key: str, expected_version: int, actual_version: int):
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Session {key} changed concurrently: expected version {expected_version}, found {actual_version}"
        )


class ConfigurationError(Exception):
    pass
