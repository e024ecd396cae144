"""
FormScript error definitions.

Every error raised by the runtime carries one of the codes below so hosts can
tell parse failures apart from runtime and database failures without string
matching.
"""

from typing import Any, Optional


E_PARSE_ERROR = "E_PARSE_ERROR"
E_RUNTIME_ERROR = "E_RUNTIME_ERROR"
E_DATABASE_ERROR = "E_DATABASE_ERROR"


class FormScriptError(Exception):
    """Base exception for FormScript errors"""
    def __init__(self, code: str, message: str, line: Optional[int] = None):
        self.code = code
        self.message = message
        self.line = line
        super().__init__(f"[{code}] {message}")


class ParseError(FormScriptError):
    """Raised by the parser when an expected token is missing"""
    def __init__(self, message: str, token: Any = None):
        self.token = token
        line = getattr(token, 'line', None)
        if line is not None:
            message = f"{message} at line {line}"
        super().__init__(E_PARSE_ERROR, message, line)


class DatabaseError(FormScriptError):
    """Raised by the database emulation when a statement fails"""
    def __init__(self, message: str):
        super().__init__(E_DATABASE_ERROR, message)


__all__ = [
    'E_PARSE_ERROR',
    'E_RUNTIME_ERROR',
    'E_DATABASE_ERROR',
    'FormScriptError',
    'ParseError',
    'DatabaseError',
]
