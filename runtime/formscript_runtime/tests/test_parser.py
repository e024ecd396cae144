"""
Tests for the FormScript parser.
"""

import os
import sys

import pytest

# Add grandparent directory to path for imports (to find formscript_runtime package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from formscript_runtime.ast_nodes import (
    NumberLiteral, StringLiteral, BooleanLiteral, NothingLiteral,
    Identifier, Member, CallExpr, Binary, Unary,
    Dim, Assignment, CallStatement, If, For, While, DoLoop, Return, Exit,
)
from formscript_runtime.errors import ParseError, E_PARSE_ERROR
from formscript_runtime.parser import parse_expression, parse_handler, parse_program


class TestExpressions:
    """Precedence and primary expressions"""

    def test_multiplication_binds_tighter(self):
        assert parse_expression('2 + 3 * 4') == Binary(
            '+', NumberLiteral(2), Binary('*', NumberLiteral(3), NumberLiteral(4)))

    def test_concat_is_looser_than_addition(self):
        expr = parse_expression('"a" & 1 + 2')
        assert expr.op == '&'
        assert expr.right == Binary('+', NumberLiteral(1), NumberLiteral(2))

    def test_comparison_is_looser_than_concat(self):
        expr = parse_expression('a & b = c')
        assert expr.op == '='
        assert expr.left.op == '&'

    def test_not_binds_looser_than_comparison(self):
        expr = parse_expression('Not a = b')
        assert expr == Unary('not', Binary('=', Identifier('a'), Identifier('b')))

    def test_and_binds_tighter_than_or(self):
        expr = parse_expression('a Or b And c')
        assert expr.op == 'or'
        assert expr.right.op == 'and'

    def test_power_is_left_associative(self):
        expr = parse_expression('2 ^ 3 ^ 2')
        assert expr == Binary('^', Binary('^', NumberLiteral(2), NumberLiteral(3)), NumberLiteral(2))

    def test_unary_minus(self):
        assert parse_expression('-x') == Unary('-', Identifier('x'))

    def test_unary_plus_is_dropped(self):
        assert parse_expression('+5') == NumberLiteral(5)

    def test_mod_and_integer_division(self):
        assert parse_expression('7 Mod 3').op == 'mod'
        assert parse_expression('7 \\ 2').op == '\\'

    def test_parentheses(self):
        expr = parse_expression('(2 + 3) * 4')
        assert expr.op == '*'
        assert expr.left.op == '+'

    def test_literals(self):
        assert parse_expression('1.5') == NumberLiteral(1.5)
        assert isinstance(parse_expression('10').value, int)
        assert parse_expression('"hi"') == StringLiteral('hi')
        assert parse_expression('True') == BooleanLiteral(True)
        assert parse_expression('false') == BooleanLiteral(False)
        assert parse_expression('Nothing') == NothingLiteral()
        assert parse_expression('Me') == Identifier('Me')

    def test_member_and_call_chain(self):
        expr = parse_expression('ListBox1.Items.Count')
        assert expr == Member(Member(Identifier('ListBox1'), 'Items'), 'Count')
        call = parse_expression('Math.Max(1, 2)')
        assert call == CallExpr(Member(Identifier('Math'), 'Max'), [NumberLiteral(1), NumberLiteral(2)])

    def test_keyword_as_member_name(self):
        assert parse_expression('Timer1.Step') == Member(Identifier('Timer1'), 'step')

    def test_type_keyword_as_namespace(self):
        expr = parse_expression('Integer.Parse("4")')
        assert expr.target == Member(Identifier('integer'), 'Parse')

    def test_new_keeps_arguments(self):
        expr = parse_expression('New SqlConnection("x")')
        assert expr == CallExpr(Identifier('SqlConnection'), [StringLiteral('x')])

    def test_trailing_tokens_are_an_error(self):
        with pytest.raises(ParseError):
            parse_expression('1 2')

    def test_missing_operand(self):
        with pytest.raises(ParseError) as info:
            parse_expression('1 +')
        assert 'Unexpected end of statement' in info.value.message
        assert info.value.code == E_PARSE_ERROR


class TestStatements:
    """Statement forms"""

    def test_assignment(self):
        assert parse_handler('x = 5') == [Assignment(Identifier('x'), NumberLiteral(5))]

    def test_member_assignment(self):
        stmt = parse_handler('TextBox1.Text = "hi"')[0]
        assert stmt == Assignment(Member(Identifier('TextBox1'), 'Text'), StringLiteral('hi'))

    def test_statement_lines(self):
        block = parse_handler('x = 1\n\ny = 2')
        assert [s.line for s in block] == [1, 3]

    def test_call_with_parentheses(self):
        stmt = parse_handler('Console.WriteLine("a")')[0]
        assert stmt == CallStatement(Member(Identifier('Console'), 'WriteLine'), [StringLiteral('a')])

    def test_call_without_parentheses(self):
        stmt = parse_handler('MsgBox "hi", 1')[0]
        assert stmt == CallStatement(Identifier('MsgBox'), [StringLiteral('hi'), NumberLiteral(1)])

    def test_bare_call(self):
        assert parse_handler('DoWork')[0] == CallStatement(Identifier('DoWork'), [])

    def test_dim_forms(self):
        block = parse_handler('Dim a\nDim b As Integer\nDim c As String = "x"\nDim d = 3')
        assert block[0] == Dim('a')
        assert block[1] == Dim('b', 'integer')
        assert block[2] == Dim('c', 'string', StringLiteral('x'))
        assert block[3] == Dim('d', 'Object', NumberLiteral(3))

    def test_dim_as_new(self):
        stmt = parse_handler('Dim conn As New SqlConnection("cs")')[0]
        assert stmt.type_name == 'SqlConnection'
        assert stmt.initializer == CallExpr(Identifier('SqlConnection'), [StringLiteral('cs')])

    def test_dim_dotted_type(self):
        assert parse_handler('Dim t As System.Data.DataTable')[0].type_name == 'DataTable'

    def test_dim_requires_name(self):
        with pytest.raises(ParseError):
            parse_handler('Dim 5')

    def test_if_elseif_else(self):
        source = 'If a Then\n  x = 1\nElseIf b Then\n  x = 2\nElse\n  x = 3\nEnd If'
        stmt = parse_handler(source)[0]
        assert isinstance(stmt, If)
        assert len(stmt.then_block) == 1
        assert len(stmt.elseif_clauses) == 1
        assert stmt.elseif_clauses[0].condition == Identifier('b')
        assert stmt.else_block == [Assignment(Identifier('x'), NumberLiteral(3))]

    def test_single_line_if(self):
        stmt = parse_handler('If a Then x = 1 Else x = 2')[0]
        assert stmt.then_block == [Assignment(Identifier('x'), NumberLiteral(1))]
        assert stmt.else_block == [Assignment(Identifier('x'), NumberLiteral(2))]

    def test_if_requires_then(self):
        with pytest.raises(ParseError) as info:
            parse_handler('If a\nx = 1\nEnd If')
        assert "Expected 'then'" in info.value.message

    def test_missing_end_if_is_tolerated(self):
        stmt = parse_handler('If a Then\nx = 1')[0]
        assert len(stmt.then_block) == 1

    def test_for_with_step(self):
        stmt = parse_handler('For i = 10 To 1 Step -2\nx = i\nNext i')[0]
        assert isinstance(stmt, For)
        assert stmt.variable == 'i'
        assert stmt.step == Unary('-', NumberLiteral(2))
        assert len(stmt.body) == 1

    def test_for_requires_to(self):
        with pytest.raises(ParseError):
            parse_handler('For i = 1\nNext')

    def test_while_wend_and_end_while(self):
        assert isinstance(parse_handler('While x < 3\nx = x + 1\nWend')[0], While)
        stmt = parse_handler('While x < 3\nx = x + 1\nEnd While\ny = 1')
        assert len(stmt) == 2

    def test_do_loop_until(self):
        stmt = parse_handler('Do\nx = x + 1\nLoop Until x = 3')[0]
        assert isinstance(stmt, DoLoop)
        assert stmt.until is True
        assert stmt.condition == Binary('=', Identifier('x'), NumberLiteral(3))

    def test_do_loop_while(self):
        stmt = parse_handler('Do\nx = x + 1\nLoop While x < 3')[0]
        assert stmt.until is False

    def test_plain_do_loop(self):
        assert parse_handler('Do\nx = 1\nLoop')[0].condition is None

    def test_leading_do_condition_is_rejected(self):
        with pytest.raises(ParseError):
            parse_handler('Do While x < 3\nLoop')

    def test_return_and_exit(self):
        block = parse_handler('Return\nReturn 5\nExit Sub\nExit For')
        assert block[0] == Return()
        assert block[1] == Return(NumberLiteral(5))
        assert block[2] == Exit('sub')
        assert block[3] == Exit('for')

    def test_comments_are_ignored(self):
        block = parse_handler("' header\nx = 1 ' trailing")
        assert block == [Assignment(Identifier('x'), NumberLiteral(1))]

    def test_handler_body_stops_at_end_sub(self):
        assert len(parse_handler('x = 1\nEnd Sub')) == 1

    def test_non_call_expression_statement_is_dropped(self):
        assert parse_handler('1 + 2') == []


class TestPrograms:
    """Modules made of Sub blocks"""

    def test_subs_become_handlers(self):
        program = parse_program(
            'Private Sub Button1_Click(sender As Object, e As EventArgs)\n'
            '    x = 1\n'
            'End Sub\n'
            'Sub Main()\n'
            '    y = 2\n'
            'End Sub\n')
        assert set(program.handlers) == {'Button1_Click', 'Main'}
        assert program.handlers['Main'] == [Assignment(Identifier('y'), NumberLiteral(2))]

    def test_handles_clause(self):
        program = parse_program(
            'Sub OnClick(sender As Object, e As EventArgs) Handles Button1.Click, Me.Load\n'
            'x = 1\n'
            'End Sub')
        assert set(program.handlers) == {'OnClick', 'Button1_Click', 'Me_Load'}
        assert program.handlers['Button1_Click'] is program.handlers['OnClick']

    def test_class_wrapper_and_imports(self):
        program = parse_program(
            'Imports System.Data\n'
            'Public Class Form1\n'
            '    Dim counter As Integer = 5\n'
            '    Private Sub Form1_Load()\n'
            '        counter = counter + 1\n'
            '    End Sub\n'
            'End Class\n')
        assert list(program.handlers) == ['Form1_Load']
        assert program.declarations == [Dim('counter', 'integer', NumberLiteral(5))]

    def test_function_blocks(self):
        program = parse_program('Function Twice(n As Integer) As Integer\nReturn n * 2\nEnd Function')
        assert 'Twice' in program.handlers

    def test_sub_requires_name(self):
        with pytest.raises(ParseError):
            parse_program('Sub ()\nEnd Sub')

    def test_parse_error_reports_line(self):
        with pytest.raises(ParseError) as info:
            parse_program('Sub Main()\nx = 1\nIf y\nEnd Sub')
        assert info.value.line == 3
        assert info.value.message.endswith('at line 3')
