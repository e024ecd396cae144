"""
FormScript AST nodes.

Statements carry the source line they started on for diagnostics. The line is
excluded from equality so two parses of differently formatted source compare
equal when their structure matches.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ASTNode:
    """Base AST node"""
    pass


# ============================================================================
# Expressions
# ============================================================================

@dataclass
class NumberLiteral(ASTNode):
    value: Any


@dataclass
class StringLiteral(ASTNode):
    value: str


@dataclass
class BooleanLiteral(ASTNode):
    value: bool


@dataclass
class NothingLiteral(ASTNode):
    """The Nothing (null) literal"""
    pass


@dataclass
class Identifier(ASTNode):
    name: str


@dataclass
class Member(ASTNode):
    """object.property"""
    object: ASTNode
    property: str


@dataclass
class Index(ASTNode):
    """
    object(index) built directly by AST consumers.

    The parser reads `x(i)` as a CallExpr, so it never produces this node.
    """
    object: ASTNode
    index: ASTNode


@dataclass
class CallExpr(ASTNode):
    """target(args) in expression position"""
    target: ASTNode
    args: List[ASTNode]


@dataclass
class Binary(ASTNode):
    op: str
    left: ASTNode
    right: ASTNode


@dataclass
class Unary(ASTNode):
    op: str
    operand: ASTNode


# ============================================================================
# Statements
# ============================================================================

@dataclass
class Dim(ASTNode):
    """Dim name [As type_name] [= initializer]"""
    name: str
    type_name: str = 'Object'
    initializer: Optional[ASTNode] = None
    line: int = field(default=0, compare=False)


@dataclass
class Assignment(ASTNode):
    target: ASTNode
    value: ASTNode
    line: int = field(default=0, compare=False)


@dataclass
class CallStatement(ASTNode):
    """Call in statement position; the result is discarded"""
    target: ASTNode
    args: List[ASTNode]
    line: int = field(default=0, compare=False)


@dataclass
class ElseIfClause(ASTNode):
    condition: ASTNode
    block: List[ASTNode]


@dataclass
class If(ASTNode):
    condition: ASTNode
    then_block: List[ASTNode]
    elseif_clauses: List[ElseIfClause] = field(default_factory=list)
    else_block: List[ASTNode] = field(default_factory=list)
    line: int = field(default=0, compare=False)


@dataclass
class For(ASTNode):
    variable: str
    start: ASTNode
    end: ASTNode
    step: Optional[ASTNode]
    body: List[ASTNode]
    line: int = field(default=0, compare=False)


@dataclass
class While(ASTNode):
    condition: ASTNode
    body: List[ASTNode]
    line: int = field(default=0, compare=False)


@dataclass
class DoLoop(ASTNode):
    """Do ... Loop [While|Until condition]; only the post-test form exists"""
    body: List[ASTNode]
    condition: Optional[ASTNode] = None
    until: bool = True
    condition_at_end: bool = True
    line: int = field(default=0, compare=False)


@dataclass
class Return(ASTNode):
    value: Optional[ASTNode] = None
    line: int = field(default=0, compare=False)


@dataclass
class Exit(ASTNode):
    what: str
    line: int = field(default=0, compare=False)


# ============================================================================
# Modules
# ============================================================================

@dataclass
class Program(ASTNode):
    """A parsed module: top-level statements plus Sub/Function handlers"""
    declarations: List[ASTNode] = field(default_factory=list)
    handlers: Dict[str, List[ASTNode]] = field(default_factory=dict)


__all__ = [
    'ASTNode',
    'NumberLiteral', 'StringLiteral', 'BooleanLiteral', 'NothingLiteral',
    'Identifier', 'Member', 'Index', 'CallExpr', 'Binary', 'Unary',
    'Dim', 'Assignment', 'CallStatement', 'ElseIfClause', 'If', 'For',
    'While', 'DoLoop', 'Return', 'Exit',
    'Program',
]
