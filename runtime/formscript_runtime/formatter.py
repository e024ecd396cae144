"""
FormScript Formatter - AST back to source text

Output re-parses to an equal AST. Nested binary operations are always
parenthesized, so precedence never depends on the reader. Comments are not
part of the AST and are not reproduced.
"""

from typing import List

from .ast_nodes import (
    ASTNode, NumberLiteral, StringLiteral, BooleanLiteral, NothingLiteral,
    Identifier, Member, Index, CallExpr, Binary, Unary,
    Dim, Assignment, CallStatement, If, For, While, DoLoop, Return, Exit,
    Program,
)


INDENT = '    '

OPERATOR_SPELLING = {
    'and': 'And',
    'or': 'Or',
    'mod': 'Mod',
    'not': 'Not',
}


def _format_number(value) -> str:
    if isinstance(value, int):
        return str(value)
    text = repr(value)
    if 'e' in text or 'n' in text:
        # The lexer has no exponent syntax
        text = f"{value:.20f}".rstrip('0')
        if text.endswith('.'):
            text += '0'
    return text


def _is_simple(node: ASTNode) -> bool:
    """Nodes that can stand in front of . or ( without parentheses"""
    return isinstance(node, (NumberLiteral, StringLiteral, BooleanLiteral, NothingLiteral,
                             Identifier, Member, CallExpr, Index))


def format_expression(node: ASTNode, top: bool = True) -> str:
    """Format an expression; top-level binaries are left unparenthesized"""
    if isinstance(node, NumberLiteral):
        return _format_number(node.value)
    if isinstance(node, StringLiteral):
        return f'"{node.value}"'
    if isinstance(node, BooleanLiteral):
        return 'True' if node.value else 'False'
    if isinstance(node, NothingLiteral):
        return 'Nothing'
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, Member):
        return f"{_format_postfix_target(node.object)}.{node.property}"
    if isinstance(node, (CallExpr, Index)):
        target = node.target if isinstance(node, CallExpr) else node.object
        args = node.args if isinstance(node, CallExpr) else [node.index]
        return f"{_format_postfix_target(target)}({', '.join(format_expression(a) for a in args)})"
    if isinstance(node, Unary):
        op = OPERATOR_SPELLING.get(node.op, node.op)
        separator = ' ' if op.isalpha() else ''
        text = f"{op}{separator}{format_expression(node.operand, top=False)}"
        return text if top else f"({text})"
    if isinstance(node, Binary):
        op = OPERATOR_SPELLING.get(node.op, node.op)
        text = f"{format_expression(node.left, top=False)} {op} {format_expression(node.right, top=False)}"
        return text if top else f"({text})"
    raise TypeError(f"Cannot format {type(node).__name__}")


def _format_postfix_target(node: ASTNode) -> str:
    if _is_simple(node):
        return format_expression(node)
    return f"({format_expression(node)})"


def format_block(statements: List[ASTNode], depth: int = 0) -> List[str]:
    lines = []
    for stmt in statements:
        lines.extend(format_statement(stmt, depth))
    return lines


def format_statement(stmt: ASTNode, depth: int = 0) -> List[str]:
    """Format one statement as a list of indented lines"""
    pad = INDENT * depth

    if isinstance(stmt, Dim):
        text = f"{pad}Dim {stmt.name}"
        if stmt.type_name != 'Object':
            text += f" As {stmt.type_name}"
        if stmt.initializer is not None:
            text += f" = {format_expression(stmt.initializer)}"
        return [text]

    if isinstance(stmt, Assignment):
        return [f"{pad}{format_expression(stmt.target)} = {format_expression(stmt.value)}"]

    if isinstance(stmt, CallStatement):
        args = ', '.join(format_expression(a) for a in stmt.args)
        return [f"{pad}{_format_postfix_target(stmt.target)}({args})"]

    if isinstance(stmt, If):
        lines = [f"{pad}If {format_expression(stmt.condition)} Then"]
        lines.extend(format_block(stmt.then_block, depth + 1))
        for clause in stmt.elseif_clauses:
            lines.append(f"{pad}ElseIf {format_expression(clause.condition)} Then")
            lines.extend(format_block(clause.block, depth + 1))
        if stmt.else_block:
            lines.append(f"{pad}Else")
            lines.extend(format_block(stmt.else_block, depth + 1))
        lines.append(f"{pad}End If")
        return lines

    if isinstance(stmt, For):
        header = f"{pad}For {stmt.variable} = {format_expression(stmt.start)} To {format_expression(stmt.end)}"
        if stmt.step is not None:
            header += f" Step {format_expression(stmt.step)}"
        return [header] + format_block(stmt.body, depth + 1) + [f"{pad}Next"]

    if isinstance(stmt, While):
        return ([f"{pad}While {format_expression(stmt.condition)}"]
                + format_block(stmt.body, depth + 1)
                + [f"{pad}Wend"])

    if isinstance(stmt, DoLoop):
        footer = f"{pad}Loop"
        if stmt.condition is not None:
            keyword = 'Until' if stmt.until else 'While'
            footer += f" {keyword} {format_expression(stmt.condition)}"
        return [f"{pad}Do"] + format_block(stmt.body, depth + 1) + [footer]

    if isinstance(stmt, Return):
        if stmt.value is None:
            return [f"{pad}Return"]
        return [f"{pad}Return {format_expression(stmt.value)}"]

    if isinstance(stmt, Exit):
        return [f"{pad}Exit {stmt.what.capitalize()}".rstrip()]

    raise TypeError(f"Cannot format {type(stmt).__name__}")


def format_source(statements: List[ASTNode]) -> str:
    """Format a handler body"""
    return '\n'.join(format_block(statements)) + '\n'


def format_program(program: Program) -> str:
    """Format a module: top-level statements, then one Sub per handler"""
    lines = format_block(program.declarations)
    for key, body in program.handlers.items():
        if lines:
            lines.append('')
        lines.append(f"Sub {key}()")
        lines.extend(format_block(body, 1))
        lines.append("End Sub")
    return '\n'.join(lines) + '\n'


__all__ = [
    'format_expression',
    'format_statement',
    'format_block',
    'format_source',
    'format_program',
]
