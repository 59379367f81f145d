from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    DOWNLOAD = "DOWNLOAD"
    IO = "IO"
    PARSE_CONFIG = "PARSE_CONFIG"
    PARSE_PAGE = "PARSE_PAGE"
    PAGE_NOT_FOUND = "PAGE_NOT_FOUND"
    CLOCK = "CLOCK"
    CACHE_EMPTY = "CACHE_EMPTY"
    INVALID_INPUT = "INVALID_INPUT"


# Kept stable for scripts that branch on the exit status.
_EXIT_CODES: dict[ErrorCode, int] = {
    ErrorCode.PARSE_CONFIG: 3,
    ErrorCode.DOWNLOAD: 4,
    ErrorCode.PARSE_PAGE: 5,
}


class TldrCacheError(Exception):
    """Raised for all expected failure conditions.

    Library code raises and never catches this; cli.main is the single place
    that turns it into a message on stderr and a process exit code.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES.get(self.code, 1)

