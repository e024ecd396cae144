"""
Tests for the FormScript lexer.
"""

import os
import sys

# Add grandparent directory to path for imports (to find formscript_runtime package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from formscript_runtime.lexer import TokenType, tokenize


def kinds(source):
    return [(t.type, t.value) for t in tokenize(source)]


class TestBasicTokens:
    """Literals, identifiers and keywords"""

    def test_assignment(self):
        assert kinds('x = 1') == [
            (TokenType.IDENTIFIER, 'x'),
            (TokenType.OPERATOR, '='),
            (TokenType.NUMBER, '1'),
            (TokenType.EOF, ''),
        ]

    def test_keywords_are_lowercased(self):
        tokens = tokenize('DIM x AS Integer')
        assert tokens[0].type == TokenType.KEYWORD
        assert tokens[0].value == 'dim'
        assert tokens[2].value == 'as'
        assert tokens[3].value == 'integer'

    def test_identifiers_keep_case(self):
        tokens = tokenize('TextBox1.Text')
        assert tokens[0].value == 'TextBox1'
        assert tokens[2].value == 'Text'
        assert tokens[2].type == TokenType.IDENTIFIER

    def test_decimal_number(self):
        assert kinds('3.25')[0] == (TokenType.NUMBER, '3.25')

    def test_leading_dot_number(self):
        assert kinds('.5')[0] == (TokenType.NUMBER, '.5')

    def test_number_stops_at_second_dot(self):
        values = [t.value for t in tokenize('1.2.3')]
        assert values[:2] == ['1.2', '.3']

    def test_string_literal(self):
        assert kinds('"hello world"')[0] == (TokenType.STRING, 'hello world')

    def test_unterminated_string_stops_at_end_of_line(self):
        tokens = tokenize('"abc\nx')
        assert tokens[0].value == 'abc'
        assert tokens[1].type == TokenType.NEWLINE
        assert tokens[2].value == 'x'


class TestOperators:
    """Operators and punctuation"""

    def test_two_char_operators(self):
        values = [t.value for t in tokenize('a <> b <= c >= d')]
        assert '<>' in values
        assert '<=' in values
        assert '>=' in values

    def test_single_char_operators(self):
        values = [t.value for t in tokenize('+-*/\\^&')][:-1]
        assert values == ['+', '-', '*', '/', '\\', '^', '&']

    def test_punctuation(self):
        tokens = tokenize('f(a, b.c)')
        punctuation = [t.value for t in tokens if t.type == TokenType.PUNCTUATION]
        assert punctuation == ['(', ',', '.', ')']


class TestLayout:
    """Newlines, comments, positions and stray characters"""

    def test_crlf_is_one_newline(self):
        tokens = tokenize('a\r\nb')
        assert [t.type for t in tokens] == [
            TokenType.IDENTIFIER, TokenType.NEWLINE, TokenType.IDENTIFIER, TokenType.EOF,
        ]
        assert tokens[2].line == 2

    def test_lone_cr_is_newline(self):
        tokens = tokenize('a\rb')
        assert tokens[1].type == TokenType.NEWLINE
        assert tokens[2].line == 2

    def test_comment_runs_to_end_of_line(self):
        tokens = tokenize("x = 1 ' set x\ny")
        comment = [t for t in tokens if t.type == TokenType.COMMENT]
        assert len(comment) == 1
        assert comment[0].value == "' set x"
        assert tokens[-2].value == 'y'

    def test_columns(self):
        tokens = tokenize('ab = 12')
        assert [t.col for t in tokens[:3]] == [1, 4, 6]

    def test_stray_characters_are_dropped(self):
        assert [t.value for t in tokenize('a # b')] == ['a', 'b', '']

    def test_non_ascii_letters_are_not_identifiers(self):
        assert [t.value for t in tokenize('é')] == ['']

    def test_empty_source(self):
        assert kinds('') == [(TokenType.EOF, '')]


class TestPositions:
    """Token positions point back into the source"""

    SOURCE = 'If x <> 1 Then\r\n  y = "a b" & z  \' note\n\tEnd If'

    def test_tokens_sit_at_their_positions(self):
        lines = self.SOURCE.replace('\r\n', '\n').split('\n')
        for token in tokenize(self.SOURCE):
            if token.type in (TokenType.NEWLINE, TokenType.EOF):
                continue
            text = lines[token.line - 1][token.col - 1:]
            if token.type == TokenType.STRING:
                assert text.startswith(f'"{token.value}"')
            else:
                assert text.lower().startswith(token.value.lower())
