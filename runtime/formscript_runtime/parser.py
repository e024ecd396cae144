"""
FormScript Parser - recursive descent over lexer tokens

Blocks are parsed by looping until a terminator predicate matches (End If,
Else/ElseIf, Next, Wend/End While, Loop, End Sub/End Function, end of input)
rather than by counting nesting depth, so a missing or mismatched End keyword
degrades gracefully instead of derailing the whole handler.

Expression precedence (loosest first):
    Or -> And -> Not -> Comparison -> Concatenation (&) -> Add/Sub ->
    Mul/Div/IntDiv/Mod -> Power (^) -> Unary (-) -> Postfix (. and ()) -> Primary
"""

from typing import Callable, List, Optional

from .ast_nodes import (
    ASTNode, NumberLiteral, StringLiteral, BooleanLiteral, NothingLiteral,
    Identifier, Member, CallExpr, Binary, Unary,
    Dim, Assignment, CallStatement, ElseIfClause, If, For, While, DoLoop,
    Return, Exit, Program,
)
from .errors import ParseError
from .lexer import Token, TokenType, tokenize


COMPARISON_OPERATORS = ('=', '<>', '<', '>', '<=', '>=')
TYPE_KEYWORDS = ('integer', 'string', 'boolean', 'double', 'single', 'long', 'object')
FORM_ALIASES = ('me', 'mybase')


class Parser:
    """Parse FormScript tokens into statement blocks"""

    def __init__(self, tokens: List[Token]):
        self.tokens = [t for t in tokens if t.type != TokenType.COMMENT]
        if not self.tokens or self.tokens[-1].type != TokenType.EOF:
            last_line = self.tokens[-1].line if self.tokens else 1
            self.tokens.append(Token(TokenType.EOF, '', last_line, 0))
        self.pos = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def parse_handler_body(self) -> List[ASTNode]:
        """Parse statements up to End Sub / End Function or end of input"""
        return self._parse_block(lambda: False)

    def parse_program(self) -> Program:
        """Parse a module made of Sub/Function blocks and top-level statements"""
        program = Program()

        while True:
            self._skip_newlines()
            if self._is_at_end():
                break

            if self._check('private', 'public'):
                self._advance()
                continue

            if self._check('class'):
                # Class wrappers are transparent: their Subs become handlers
                self._advance()
                if not self._at_statement_end():
                    self._advance()
                continue

            if self._at_end_of('class', 'sub', 'function'):
                self._advance()
                self._advance()
                continue

            if self._check('sub', 'function'):
                self._parse_sub(program)
                continue

            if self._peek().type == TokenType.IDENTIFIER and self._peek().value.lower() in ('imports', 'option'):
                self._skip_line()
                continue

            stmt = self._parse_statement()
            if stmt is not None:
                program.declarations.append(stmt)

        return program

    def parse_expression(self) -> ASTNode:
        """Parse a single expression"""
        return self._parse_or()

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def _parse_sub(self, program: Program):
        """Parse Sub/Function name(params) [As T] [Handles X.Y, ...] ... End Sub"""
        kind = self._advance().value
        name_token = self._advance()
        if name_token.type != TokenType.IDENTIFIER:
            raise ParseError(f"Expected a name after '{kind}'", name_token)

        if self._check('('):
            self._skip_parenthesized()

        keys = [name_token.value]
        while not self._at_statement_end():
            token = self._advance()
            if token.type == TokenType.IDENTIFIER and token.value.lower() == 'handles':
                keys.extend(self._parse_handles_clause())

        body = self._parse_block(lambda: False)
        if self._at_end_of('sub', 'function'):
            self._advance()
            self._advance()

        for key in keys:
            program.handlers[key] = body

    def _parse_handles_clause(self) -> List[str]:
        """Read `Handles A.Click, Me.Load` into handler keys"""
        keys = []
        while not self._at_statement_end():
            owner = self._advance()
            if not self._check('.'):
                raise ParseError("Expected '.' in Handles clause", self._peek())
            self._advance()
            event = self._advance()
            owner_name = 'Me' if owner.value.lower() in FORM_ALIASES else owner.value
            keys.append(f"{owner_name}_{event.value}")
            if not self._check(','):
                break
            self._advance()
        return keys

    def _skip_parenthesized(self):
        depth = 0
        while not self._is_at_end():
            token = self._advance()
            if self._is_symbol(token, '('):
                depth += 1
            elif self._is_symbol(token, ')'):
                depth -= 1
                if depth == 0:
                    return

    def _skip_line(self):
        while not self._at_statement_end():
            self._advance()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_block(self, is_terminator: Callable[[], bool]) -> List[ASTNode]:
        """Parse statements until the terminator predicate or a handler end matches"""
        statements = []
        self._skip_newlines()
        while not self._is_at_end() and not self._at_handler_end() and not is_terminator():
            stmt = self._parse_statement()
            if stmt is not None:
                statements.append(stmt)
            self._skip_newlines()
        return statements

    def _parse_statement(self) -> Optional[ASTNode]:
        """Parse a single statement (None for statements that have no effect)"""
        self._skip_newlines()
        if self._is_at_end():
            return None

        if self._check('dim'):
            return self._parse_dim()
        if self._check('if'):
            return self._parse_if()
        if self._check('for'):
            return self._parse_for()
        if self._check('while'):
            return self._parse_while()
        if self._check('do'):
            return self._parse_do_loop()
        if self._check('return'):
            return self._parse_return()
        if self._check('exit'):
            return self._parse_exit()
        if self._check('end'):
            # Stray End <word>: tolerated and ignored
            self._advance()
            if self._peek().type in (TokenType.KEYWORD, TokenType.IDENTIFIER):
                self._advance()
            return None

        return self._parse_expression_statement()

    def _parse_dim(self) -> Dim:
        line = self._advance().line
        name_token = self._advance()
        if name_token.type != TokenType.IDENTIFIER:
            raise ParseError(f"Expected variable name after 'Dim' but got '{name_token.value}'", name_token)

        type_name = 'Object'
        initializer = None

        if self._check('as'):
            self._advance()
            if self._check('new'):
                initializer = self._parse_new()
                type_name = initializer.target.name
            else:
                type_name = self._parse_type_name()

        if self._check('='):
            self._advance()
            initializer = self.parse_expression()

        return Dim(name=name_token.value, type_name=type_name, initializer=initializer, line=line)

    def _parse_type_name(self) -> str:
        """Read a possibly dotted type name and keep its last segment"""
        token = self._advance()
        if token.type not in (TokenType.IDENTIFIER, TokenType.KEYWORD):
            raise ParseError(f"Expected type name but got '{token.value}'", token)
        name = token.value
        while self._check('.'):
            self._advance()
            name = self._advance().value
        return name

    def _parse_if(self) -> If:
        line = self._advance().line
        condition = self.parse_expression()
        self._expect('then')

        if not self._at_statement_end():
            # Single-line form: If c Then stmt [Else stmt]
            then_block = self._single_statement_block()
            else_block = []
            if self._check('else'):
                self._advance()
                else_block = self._single_statement_block()
            return If(condition=condition, then_block=then_block, else_block=else_block, line=line)

        def at_branch_end():
            return self._check('else', 'elseif') or self._at_end_of('if')

        then_block = self._parse_block(at_branch_end)

        elseif_clauses = []
        while self._check('elseif'):
            self._advance()
            clause_condition = self.parse_expression()
            self._expect('then')
            elseif_clauses.append(ElseIfClause(condition=clause_condition, block=self._parse_block(at_branch_end)))

        else_block = []
        if self._check('else'):
            self._advance()
            else_block = self._parse_block(lambda: self._at_end_of('if'))

        if self._at_end_of('if'):
            self._advance()
            self._advance()

        return If(condition=condition, then_block=then_block, elseif_clauses=elseif_clauses,
                  else_block=else_block, line=line)

    def _single_statement_block(self) -> List[ASTNode]:
        stmt = self._parse_statement()
        return [stmt] if stmt is not None else []

    def _parse_for(self) -> For:
        line = self._advance().line
        variable = self._advance()
        if variable.type != TokenType.IDENTIFIER:
            raise ParseError(f"Expected loop variable after 'For' but got '{variable.value}'", variable)
        self._expect('=')
        start = self.parse_expression()
        self._expect('to')
        end = self.parse_expression()
        step = None
        if self._check('step'):
            self._advance()
            step = self.parse_expression()

        body = self._parse_block(lambda: self._check('next'))
        if self._check('next'):
            self._advance()
            if self._peek().type == TokenType.IDENTIFIER:
                self._advance()

        return For(variable=variable.value, start=start, end=end, step=step, body=body, line=line)

    def _parse_while(self) -> While:
        line = self._advance().line
        condition = self.parse_expression()
        body = self._parse_block(lambda: self._check('wend') or self._at_end_of('while'))
        if self._check('wend'):
            self._advance()
        elif self._at_end_of('while'):
            self._advance()
            self._advance()
        return While(condition=condition, body=body, line=line)

    def _parse_do_loop(self) -> DoLoop:
        line = self._advance().line
        if self._check('while', 'until'):
            raise ParseError("Leading Do While/Until conditions are not supported; use Loop While/Until",
                             self._peek())

        body = self._parse_block(lambda: self._check('loop'))
        condition = None
        until = True
        if self._check('loop'):
            self._advance()
            if self._check('until', 'while'):
                until = self._advance().value == 'until'
                condition = self.parse_expression()

        return DoLoop(body=body, condition=condition, until=until, line=line)

    def _parse_return(self) -> Return:
        line = self._advance().line
        value = None
        if not self._at_statement_end():
            value = self.parse_expression()
        return Return(value=value, line=line)

    def _parse_exit(self) -> Exit:
        line = self._advance().line
        what = ''
        if not self._at_statement_end():
            what = self._advance().value.lower()
        return Exit(what=what, line=line)

    def _parse_expression_statement(self) -> Optional[ASTNode]:
        line = self._peek().line
        saved_pos = self.pos
        target = self._parse_postfix()

        if isinstance(target, (Identifier, Member)) and self._check('='):
            self._advance()
            value = self.parse_expression()
            return Assignment(target=target, value=value, line=line)

        self.pos = saved_pos
        expr = self.parse_expression()

        if isinstance(expr, CallExpr):
            return CallStatement(target=expr.target, args=expr.args, line=line)

        if isinstance(expr, (Identifier, Member)):
            # Classic call syntax without parentheses: Console.WriteLine "hi", x
            args = []
            if not self._at_statement_end() and not self._check('else'):
                args.append(self.parse_expression())
                while self._check(','):
                    self._advance()
                    args.append(self.parse_expression())
            return CallStatement(target=expr, args=args, line=line)

        return None

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _parse_or(self) -> ASTNode:
        left = self._parse_and()
        while self._check('or'):
            self._advance()
            left = Binary(op='or', left=left, right=self._parse_and())
        return left

    def _parse_and(self) -> ASTNode:
        left = self._parse_not()
        while self._check('and'):
            self._advance()
            left = Binary(op='and', left=left, right=self._parse_not())
        return left

    def _parse_not(self) -> ASTNode:
        if self._check('not'):
            self._advance()
            return Unary(op='not', operand=self._parse_not())
        return self._parse_comparison()

    def _parse_comparison(self) -> ASTNode:
        left = self._parse_concat()
        while self._check(*COMPARISON_OPERATORS):
            op = self._advance().value
            left = Binary(op=op, left=left, right=self._parse_concat())
        return left

    def _parse_concat(self) -> ASTNode:
        left = self._parse_add_sub()
        while self._check('&'):
            self._advance()
            left = Binary(op='&', left=left, right=self._parse_add_sub())
        return left

    def _parse_add_sub(self) -> ASTNode:
        left = self._parse_mul_div()
        while self._check('+', '-'):
            op = self._advance().value
            left = Binary(op=op, left=left, right=self._parse_mul_div())
        return left

    def _parse_mul_div(self) -> ASTNode:
        left = self._parse_power()
        while self._check('*', '/', '\\', 'mod'):
            op = self._advance().value
            left = Binary(op=op, left=left, right=self._parse_power())
        return left

    def _parse_power(self) -> ASTNode:
        left = self._parse_unary()
        while self._check('^'):
            self._advance()
            left = Binary(op='^', left=left, right=self._parse_unary())
        return left

    def _parse_unary(self) -> ASTNode:
        if self._check('-'):
            self._advance()
            return Unary(op='-', operand=self._parse_unary())
        if self._check('+'):
            self._advance()
            return self._parse_unary()
        return self._parse_postfix()

    def _parse_postfix(self) -> ASTNode:
        expr = self._parse_primary()

        while True:
            if self._check('.'):
                self._advance()
                name = self._advance()
                if name.type not in (TokenType.IDENTIFIER, TokenType.KEYWORD):
                    raise ParseError(f"Expected member name after '.' but got '{name.value}'", name)
                expr = Member(object=expr, property=name.value)
            elif self._check('('):
                expr = CallExpr(target=expr, args=self._parse_arguments())
            else:
                break

        return expr

    def _parse_arguments(self) -> List[ASTNode]:
        """Parse (arg, arg, ...) including both parentheses"""
        self._expect('(')
        args = []
        if not self._check(')'):
            args.append(self.parse_expression())
            while self._check(','):
                self._advance()
                args.append(self.parse_expression())
        self._expect(')')
        return args

    def _parse_new(self) -> CallExpr:
        """New TypeName[(args)] -> call of the type name, resolved by the interpreter"""
        self._expect('new')
        type_name = self._parse_type_name()
        args = []
        if self._check('('):
            args = self._parse_arguments()
        return CallExpr(target=Identifier(name=type_name), args=args)

    def _parse_primary(self) -> ASTNode:
        token = self._peek()

        if token.type == TokenType.NUMBER:
            self._advance()
            if '.' in token.value:
                return NumberLiteral(value=float(token.value))
            return NumberLiteral(value=int(token.value))

        if token.type == TokenType.STRING:
            self._advance()
            return StringLiteral(value=token.value)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(name=token.value)

        if self._check('true', 'false'):
            self._advance()
            return BooleanLiteral(value=token.value == 'true')

        if self._check('nothing'):
            self._advance()
            return NothingLiteral()

        if self._check('me'):
            self._advance()
            return Identifier(name='Me')

        if self._check('new'):
            return self._parse_new()

        if self._check(*TYPE_KEYWORDS):
            # Integer.Parse(...), String.IsNullOrEmpty(...)
            self._advance()
            return Identifier(name=token.value)

        if self._check('('):
            self._advance()
            expr = self.parse_expression()
            self._expect(')')
            return expr

        if token.type == TokenType.EOF or token.type == TokenType.NEWLINE:
            raise ParseError("Unexpected end of statement", token)
        raise ParseError(f"Unexpected token '{token.value}'", token)

    # ------------------------------------------------------------------
    # Parser utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _is_symbol(token: Token, value: str) -> bool:
        """Keywords, operators and punctuation match by value; literals never do"""
        return token.type in (TokenType.KEYWORD, TokenType.OPERATOR, TokenType.PUNCTUATION) and token.value == value

    def _check(self, *values: str) -> bool:
        """Check if current token is one of the given keywords/symbols"""
        token = self._peek()
        return any(self._is_symbol(token, value) for value in values)

    def _at_end_of(self, *constructs: str) -> bool:
        """Check for `End <construct>`"""
        if not self._check('end'):
            return False
        following = self._peek_ahead(1)
        return any(self._is_symbol(following, c) for c in constructs)

    def _at_handler_end(self) -> bool:
        return self._at_end_of('sub', 'function')

    def _at_statement_end(self) -> bool:
        return self._peek().type in (TokenType.NEWLINE, TokenType.EOF)

    def _expect(self, value: str) -> Token:
        """Consume a keyword/symbol or raise ParseError"""
        token = self._peek()
        if not self._is_symbol(token, value):
            shown = token.value if token.type != TokenType.NEWLINE else 'end of line'
            raise ParseError(f"Expected '{value}' but got '{shown}'", token)
        return self._advance()

    def _skip_newlines(self):
        while self._peek().type == TokenType.NEWLINE:
            self.pos += 1

    def _advance(self) -> Token:
        """Consume current token and return it"""
        token = self._peek()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _peek_ahead(self, offset: int) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _is_at_end(self) -> bool:
        return self._peek().type == TokenType.EOF


# ============================================================================
# Convenience Functions
# ============================================================================

def parse_handler(source: str) -> List[ASTNode]:
    """Parse the body of one event handler into a statement block"""
    return Parser(tokenize(source)).parse_handler_body()


def parse_program(source: str) -> Program:
    """Parse a whole module (Sub blocks plus top-level declarations)"""
    return Parser(tokenize(source)).parse_program()


def parse_expression(source: str) -> ASTNode:
    """Parse a standalone expression; trailing tokens are an error"""
    parser = Parser(tokenize(source))
    parser._skip_newlines()
    expr = parser.parse_expression()
    parser._skip_newlines()
    if not parser._is_at_end():
        token = parser._peek()
        raise ParseError(f"Unexpected token '{token.value}' after expression", token)
    return expr


__all__ = [
    'Parser',
    'parse_handler',
    'parse_program',
    'parse_expression',
]
