"""
Tests for the FormScript formatter.
"""

import os
import sys

import pytest

# Add grandparent directory to path for imports (to find formscript_runtime package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from formscript_runtime.ast_nodes import Binary, NumberLiteral, Unary
from formscript_runtime.formatter import format_expression, format_program, format_source
from formscript_runtime.parser import parse_expression, parse_handler, parse_program


HANDLER = '''
dim total as integer = 0
for i = 1 to 10 step 2
  if i mod 3 = 0 then
     total = total + i
  elseif i = 5 then
     listbox1.items.add("five")
  else
     console.writeline "skip", i
  end if
next
while total < 100 : total = total * 2
wend
do
  total = total - 1
loop until total <= 50
msgbox("done " & -total)
exit sub
'''


class TestExpressions:
    """Expression formatting"""

    def test_nested_binaries_are_parenthesized(self):
        assert format_expression(parse_expression('1 + 2 * 3')) == '1 + (2 * 3)'

    def test_keyword_operators(self):
        assert format_expression(parse_expression('a and not b or c mod 2')) == '(a And (Not b)) Or (c Mod 2)'

    def test_literals(self):
        assert format_expression(parse_expression('"x" & True & Nothing')) == '("x" & True) & Nothing'
        assert format_expression(NumberLiteral(0.5)) == '0.5'

    def test_small_float_has_no_exponent(self):
        text = format_expression(NumberLiteral(1e-7))
        assert 'e' not in text
        assert parse_expression(text) == NumberLiteral(1e-7)

    def test_unary_minus(self):
        assert format_expression(Unary('-', Binary('+', NumberLiteral(1), NumberLiteral(2)))) == '-(1 + 2)'

    def test_member_call_chain(self):
        assert format_expression(parse_expression('Math.Max(a, b).ToString()')) == 'Math.Max(a, b).ToString()'


class TestRoundTrip:
    """Formatted source parses back to the same tree"""

    @pytest.mark.parametrize('source', [
        'x = (1 + 2) * 3',
        'x = 2 ^ 3 ^ 2',
        'x = -2 ^ 2',
        'x = Not a = b',
        'MsgBox "hi"',
        'Dim c As New SqlConnection("cs")',
        'If a Then b = 1 Else b = 2',
        'Return 1',
    ])
    def test_statement_round_trip(self, source):
        block = parse_handler(source)
        assert parse_handler(format_source(block)) == block

    def test_handler_round_trip(self):
        block = parse_handler(HANDLER.replace(' : ', '\n'))
        formatted = format_source(block)
        assert parse_handler(formatted) == block
        assert 'For i = 1 To 10 Step 2' in formatted
        assert 'Loop Until total <= 50' in formatted

    def test_program_round_trip(self):
        program = parse_program('Sub Main()\nx = 1\nEnd Sub\nSub Button1_Click()\nMain()\nEnd Sub')
        formatted = format_program(program)
        assert formatted.startswith('Sub Main()\n    x = 1\nEnd Sub\n')
        assert parse_program(formatted) == program
