"""
FormScript Runtime - BASIC-dialect scripting for simulated forms

This package lets event handlers written in a small Visual Basic-like dialect
run immediately against simulated form controls:

**Language:**
- Lexer: source text to tokens (lenient, never raises)
- Parser: recursive descent to an AST of statement blocks
- Interpreter: async tree walker over a shared RuntimeContext

**Session:**
- RuntimeContext: components, variables, handlers, host callbacks
- FormScriptRuntime: loads handlers, runs Load/Main, dispatches events, timers
- Database: ADO.NET-style objects backed by sqlite3

**Tooling:**
- Formatter: AST back to source
- CLI: `formscript tokens|parse|fmt|run`

Version: 1.0.0
"""

__version__ = '1.0.0'

# ============================================================================
# Errors and configuration
# ============================================================================

from .errors import (
    FormScriptError, ParseError, DatabaseError,
    E_PARSE_ERROR, E_RUNTIME_ERROR, E_DATABASE_ERROR,
)
from .config import RuntimeConfig

# ============================================================================
# Language
# ============================================================================

from .lexer import Lexer, Token, TokenType, tokenize
from .parser import Parser, parse_handler, parse_program, parse_expression
from .interpreter import Interpreter
from .formatter import format_expression, format_source, format_program

# ============================================================================
# Session
# ============================================================================

from .context import HostCallbacks, RuntimeComponent, RuntimeContext
from .runtime import FormScriptRuntime, execute_formscript
from .database import (
    SqlConnection, SqlCommand, SqlDataReader, DataTable, SqlDataAdapter,
)


__all__ = [
    '__version__',
    # Errors
    'FormScriptError', 'ParseError', 'DatabaseError',
    'E_PARSE_ERROR', 'E_RUNTIME_ERROR', 'E_DATABASE_ERROR',
    'RuntimeConfig',
    # Language
    'Lexer', 'Token', 'TokenType', 'tokenize',
    'Parser', 'parse_handler', 'parse_program', 'parse_expression',
    'Interpreter',
    'format_expression', 'format_source', 'format_program',
    # Session
    'HostCallbacks', 'RuntimeComponent', 'RuntimeContext',
    'FormScriptRuntime', 'execute_formscript',
    'SqlConnection', 'SqlCommand', 'SqlDataReader', 'DataTable', 'SqlDataAdapter',
]
