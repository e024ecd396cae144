"""
FormScript Lexer - BASIC dialect tokenization

Converts handler source text into a flat list of tokens. The lexer is lenient: it
never raises, and characters it does not recognize are dropped.

Token order of precedence:
    newline, whitespace, comment ('), string ("), number, identifier/keyword,
    two-character operators (<>, <=, >=), single-character operators,
    punctuation.

Example:
    >>> [t.value for t in tokenize('x = 1')]
    ['x', '=', '1', '']
"""

from dataclasses import dataclass
from typing import List


# ============================================================================
# Token Types
# ============================================================================

class TokenType:
    """Token type constants"""
    KEYWORD = "KEYWORD"
    IDENTIFIER = "IDENTIFIER"
    NUMBER = "NUMBER"
    STRING = "STRING"
    OPERATOR = "OPERATOR"
    PUNCTUATION = "PUNCTUATION"
    NEWLINE = "NEWLINE"
    COMMENT = "COMMENT"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    """Token from FormScript source"""
    type: str
    value: str
    line: int
    col: int


KEYWORDS = frozenset({
    'dim', 'as', 'integer', 'string', 'boolean', 'double', 'single', 'long', 'object',
    'if', 'then', 'else', 'elseif', 'end', 'sub', 'function', 'return',
    'for', 'to', 'step', 'next', 'while', 'wend', 'do', 'loop', 'until',
    'true', 'false', 'not', 'and', 'or', 'mod',
    'private', 'public', 'class', 'new', 'me', 'nothing',
    'select', 'case', 'exit', 'byval', 'byref',
    'try', 'catch', 'finally',
})

OPERATORS = frozenset('=<>+-*/\\^&')
TWO_CHAR_OPERATORS = frozenset({'<>', '<=', '>='})
PUNCTUATION = frozenset('(),.')

DIGITS = frozenset('0123456789')
IDENT_START = frozenset('ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_')
IDENT_CHARS = IDENT_START | DIGITS


# ============================================================================
# Lexer
# ============================================================================

class Lexer:
    """Tokenize FormScript source code"""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.col = 1
        self.tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """Tokenize entire source"""
        while self.pos < len(self.source):
            ch = self.source[self.pos]

            if ch == '\r' or ch == '\n':
                self._read_newline()
            elif ch in ' \t':
                self._advance()
            elif ch == "'":
                self._read_comment()
            elif ch == '"':
                self._read_string()
            elif ch in DIGITS or (ch == '.' and self._peek(1) in DIGITS):
                self._read_number()
            elif ch in IDENT_START:
                self._read_identifier()
            elif ch + self._peek(1) in TWO_CHAR_OPERATORS:
                self._add_token(TokenType.OPERATOR, ch + self._peek(1))
                self._advance(2)
            elif ch in OPERATORS:
                self._add_token(TokenType.OPERATOR, ch)
                self._advance()
            elif ch in PUNCTUATION:
                self._add_token(TokenType.PUNCTUATION, ch)
                self._advance()
            else:
                # Stray characters are tolerated, never reported
                self._advance()

        self._add_token(TokenType.EOF, '')
        return self.tokens

    def _read_newline(self):
        """Read \\n, \\r\\n or a lone \\r as one statement separator"""
        self._add_token(TokenType.NEWLINE, '\n')
        if self.source[self.pos] == '\r' and self._peek(1) == '\n':
            self.pos += 1
        self.pos += 1
        self.line += 1
        self.col = 1

    def _read_comment(self):
        """Read ' comment up to (not including) the end of line"""
        start = self.pos
        while self.pos < len(self.source) and self.source[self.pos] not in '\r\n':
            self.pos += 1
        self._add_token(TokenType.COMMENT, self.source[start:self.pos])
        self.col += self.pos - start

    def _read_string(self):
        """Read string literal (no escapes; unterminated strings stop at end of line)"""
        start_col = self.col
        self._advance()  # Skip opening quote
        start = self.pos

        while self.pos < len(self.source) and self.source[self.pos] not in '"\r\n':
            self.pos += 1

        text = self.source[start:self.pos]
        self.col += len(text)
        if self.pos < len(self.source) and self.source[self.pos] == '"':
            self._advance()  # Skip closing quote

        self.tokens.append(Token(type=TokenType.STRING, value=text, line=self.line, col=start_col))

    def _read_number(self):
        """Read numeric literal with at most one decimal point"""
        start = self.pos
        has_dot = False

        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch in DIGITS:
                self.pos += 1
            elif ch == '.' and not has_dot and self._peek(1) in DIGITS:
                has_dot = True
                self.pos += 1
            else:
                break

        text = self.source[start:self.pos]
        self._add_token(TokenType.NUMBER, text)
        self.col += len(text)

    def _read_identifier(self):
        """Read identifier or keyword"""
        start = self.pos

        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch in IDENT_CHARS:
                self.pos += 1
            else:
                break

        text = self.source[start:self.pos]
        lower = text.lower()
        if lower in KEYWORDS:
            self._add_token(TokenType.KEYWORD, lower)
        else:
            self._add_token(TokenType.IDENTIFIER, text)
        self.col += len(text)

    def _peek(self, offset: int) -> str:
        index = self.pos + offset
        if index < len(self.source):
            return self.source[index]
        return ''

    def _advance(self, count: int = 1):
        self.pos += count
        self.col += count

    def _add_token(self, type: str, value: str):
        """Add token at the current position"""
        self.tokens.append(Token(type=type, value=value, line=self.line, col=self.col))


def tokenize(source: str) -> List[Token]:
    """Tokenize FormScript source (convenience function)"""
    return Lexer(source).tokenize()


__all__ = [
    'TokenType',
    'Token',
    'KEYWORDS',
    'Lexer',
    'tokenize',
]
