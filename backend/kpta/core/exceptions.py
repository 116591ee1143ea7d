"""
Error taxonomy for the insights pipeline and its sibling flows
"""
from typing import Optional


class KptaError(Exception):
    """Base class for application errors"""


class StorageError(KptaError):
    """The session store could not be read or written"""


class CacheWriteError(StorageError):
    """The insight cache upsert failed; never fatal to a request"""


class AnalysisError(KptaError):
    """An external analysis call raised or timed out"""

    def __init__(self, kind: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{kind} analysis failed: {message}")
        self.kind = kind
        self.cause = cause


class ParseError(KptaError):
    """Model output could not be turned into JSON"""


class NotFoundError(KptaError):
    """Requested record does not exist or belongs to another user"""
