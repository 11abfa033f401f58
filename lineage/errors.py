from typing import Any, List, Optional


class LineageError(Exception):
    """Base class for every error raised by the lineage engine."""


class CycleDetected(LineageError):
    """A previous-league pointer revisited a league already on the chain."""

    def __init__(self, league_id: str, chain: List[str]):
        self.league_id = league_id
        self.chain = list(chain)
        super().__init__(f"League family cycle at {league_id}: {' -> '.join(self.chain + [league_id])}")


class InvalidDepth(LineageError):
    def __init__(self, depth: int, minimum: int, maximum: int):
        self.depth = depth
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(f"Network depth must be between {minimum} and {maximum}, got {depth}")


class InvalidAssetRef(LineageError):
    def __init__(self, raw: Any, reason: str = "malformed asset reference"):
        self.raw = raw
        super().__init__(f"{reason}: {raw!r}")


class UnknownAsset(LineageError):
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Asset {ref} is not known in this league family")


class UnknownLeague(LineageError):
    def __init__(self, league_id: str):
        self.league_id = league_id
        super().__init__(f"League {league_id} has not been synced")


class DuplicateAssetEvent(LineageError):
    """Two emitted events share a business key; the decomposer or resolver emitted twice."""

    def __init__(self, key: tuple):
        self.key = key
        super().__init__(f"Duplicate asset event for key {key}")


class RebuildInProgress(LineageError):
    def __init__(self, league_id: str):
        self.league_id = league_id
        super().__init__(f"League family {league_id} is already rebuilding")


class RebuildFailed(LineageError):
    STAGES = ("fetch", "decompose", "resolve", "persist")

    def __init__(self, stage: str, league_id: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.league_id = league_id
        self.cause = cause
        super().__init__(f"Rebuild of {league_id} failed during {stage}: {cause!r}")


class UpstreamError(LineageError):
    def __init__(self, url: str, status: Optional[int] = None, message: str = ""):
        self.url = url
        self.status = status
        super().__init__(f"Sleeper GET {url} failed ({status}): {message}".rstrip(": "))
