from __future__ import annotations


class NewsRelayError(Exception):
    pass


class ConfigError(NewsRelayError):
    """Required configuration is missing or invalid. Fatal at startup."""


class InvalidTransition(NewsRelayError):
    def __init__(self, stage: str, status: str) -> None:
        super().__init__(f"stage '{stage}' does not consume items in status '{status}'")
        self.stage = stage
        self.status = status


class BlobNotFound(NewsRelayError):
    def __init__(self, item_id: str, stage: str) -> None:
        super().__init__(f"no '{stage}' artifact for item {item_id}")
        self.item_id = item_id
        self.stage = stage


class MarkupError(NewsRelayError):
    pass


class PublishError(NewsRelayError):
    pass


class RateLimited(PublishError):
    def __init__(self, retry_after: int, description: str = "") -> None:
        super().__init__(f"rate limited, retry after {retry_after}s: {description}")
        self.retry_after = retry_after
        self.description = description
