"""
FormScript Interpreter - async tree-walking evaluator

Executes parsed handler blocks against a RuntimeContext. Execution is
cooperative: the interpreter only yields to the event loop while awaiting a
host callback (message box, input box, console read) or a database call, so
every statement before such a suspension point is already visible to the host.

Architecture:
- Statements: execute_block / execute_statement dispatch by node type
- Expressions: evaluate dispatches by node type; coercions live in builtins
- Calls: one dispatcher shared by call statements and call expressions
- Handlers: named handlers run through execute_handler, guarded by a call
  stack so a handler already running is never re-entered

One Interpreter serves one handler invocation (it owns the call stack). Any
number of interpreters may share the same RuntimeContext.
"""

import logging
import math
from typing import Any, List, Optional, Tuple

from .ast_nodes import (
    ASTNode, NumberLiteral, StringLiteral, BooleanLiteral, NothingLiteral,
    Identifier, Member, Index, CallExpr, Binary, Unary,
    Dim, Assignment, CallStatement, If, For, While, DoLoop, Return, Exit,
)
from .builtins import (
    normalize_number, to_number, to_display, is_truthy,
    loose_equals, compare, index_value, call_string_method,
    evaluate_math_expression,
    FUNCTIONS, MATH_FUNCTIONS, CONVERT_FUNCTIONS, TYPE_FUNCTIONS,
    NAMESPACE_CONSTANTS, CONSTANTS,
)
from .context import RuntimeContext, call_host, canonical_property, is_host_object
from .database import CONSTRUCTORS, HANDLE_TYPES
from .errors import FormScriptError, ParseError, E_RUNTIME_ERROR
from .parser import parse_expression, parse_handler


logger = logging.getLogger("formscript.interpreter")
logger.addHandler(logging.NullHandler())


NUMERIC_TYPES = frozenset({'integer', 'long', 'double', 'single', 'decimal', 'short', 'byte'})

# Identifiers that name static classes rather than variables or components
NAMESPACES = frozenset({
    'messagebox', 'console', 'file', 'math', 'convert', 'environment',
    'integer', 'long', 'double', 'single', 'string',
})

STRING_PROPERTIES = frozenset({'length', 'toupper', 'tolower', 'trim'})

ARITHMETIC_OPERATORS = frozenset({'+', '-', '*', '/', '\\', 'mod', '^'})


def zero_value(type_name: str) -> Any:
    """Value a Dim without initializer starts with"""
    lower = type_name.lower()
    if lower in NUMERIC_TYPES:
        return 0
    if lower == 'boolean':
        return False
    if lower in HANDLE_TYPES:
        return None
    return ''


class Interpreter:
    """Execute FormScript blocks against a shared RuntimeContext"""

    def __init__(self, context: RuntimeContext):
        self.ctx = context
        self.call_stack: List[str] = []
        self.current_line: Optional[int] = None

    # ========================================================================
    # Entry points
    # ========================================================================

    async def execute_handler(self, key: str) -> bool:
        """
        Run the handler registered under key.

        Returns False when there is no such handler or it is already running
        in this invocation.
        """
        body = self.ctx.handlers.get(key)
        if body is None:
            return False
        if key in self.call_stack:
            logger.debug("skipping re-entrant call to %s", key)
            return False

        self.call_stack.append(key)
        try:
            await self.execute_block(body)
        finally:
            self.call_stack.pop()
        return True

    async def parse_and_execute(self, source: str):
        """Parse handler source and run it; parse errors go to on_error"""
        try:
            block = parse_handler(source)
        except ParseError as e:
            await self.ctx.report_error(e.message, e.line)
            return
        await self.execute_block(block)

    async def evaluate_source(self, source: str) -> Any:
        """Parse and evaluate a single expression"""
        return await self.evaluate(parse_expression(source))

    # ========================================================================
    # Statements
    # ========================================================================

    async def execute_block(self, statements: List[ASTNode]):
        for stmt in statements:
            if self.ctx.stopped or self.ctx.paused:
                return
            await self.execute_statement(stmt)

    async def execute_statement(self, stmt: ASTNode):
        if self.ctx.stopped:
            return

        previous_line = self.current_line
        self.current_line = getattr(stmt, 'line', None)
        try:
            if isinstance(stmt, Dim):
                if stmt.initializer is not None:
                    value = await self.evaluate(stmt.initializer)
                else:
                    value = zero_value(stmt.type_name)
                self.ctx.variables[stmt.name] = value

            elif isinstance(stmt, Assignment):
                value = await self.evaluate(stmt.value)
                await self._assign(stmt.target, value)

            elif isinstance(stmt, CallStatement):
                args = [await self.evaluate(arg) for arg in stmt.args]
                await self.call(stmt.target, args)

            elif isinstance(stmt, If):
                await self._execute_if(stmt)

            elif isinstance(stmt, For):
                await self._execute_for(stmt)

            elif isinstance(stmt, While):
                await self._execute_while(stmt)

            elif isinstance(stmt, DoLoop):
                await self._execute_do_loop(stmt)

            elif isinstance(stmt, (Return, Exit)):
                # Handlers always run to completion
                logger.debug("%s at line %s has no effect", type(stmt).__name__, stmt.line)

            else:
                raise FormScriptError(E_RUNTIME_ERROR, f"Unknown statement type: {type(stmt).__name__}",
                                      self.current_line)
        except FormScriptError as e:
            if e.line is None:
                e.line = self.current_line
            raise
        finally:
            self.current_line = previous_line

    async def _assign(self, target: ASTNode, value: Any):
        if isinstance(target, Identifier):
            name = target.name
            if name in self.ctx.variables:
                self.ctx.variables[name] = value
            elif name == 'Me' or self.ctx.has_component(name):
                logger.debug("ignoring assignment to component %s", name)
            else:
                self.ctx.variables[name] = value
            return

        if isinstance(target, Member):
            component = self._resolve_component(target.object)
            if component is not None:
                await self.ctx.set_property(component, target.property, value)
                return
            owner = await self.evaluate(target.object)
            if is_host_object(owner):
                owner.set_member(target.property, value)
                return

        logger.debug("ignoring assignment to %s", type(target).__name__)

    async def _execute_if(self, stmt: If):
        if is_truthy(await self.evaluate(stmt.condition)):
            await self.execute_block(stmt.then_block)
            return
        for clause in stmt.elseif_clauses:
            if is_truthy(await self.evaluate(clause.condition)):
                await self.execute_block(clause.block)
                return
        if stmt.else_block:
            await self.execute_block(stmt.else_block)

    def _should_abort_loop(self) -> bool:
        return self.ctx.stopped or self.ctx.paused

    async def _report_runaway(self, kind: str, line: int):
        cap = self.ctx.config.max_loop_iterations
        await self.ctx.report_error(f"Infinite loop detected in {kind} loop (more than {cap} iterations)", line)

    async def _execute_for(self, stmt: For):
        start = to_number(await self.evaluate(stmt.start))
        end = to_number(await self.evaluate(stmt.end))
        step = to_number(await self.evaluate(stmt.step)) if stmt.step is not None else 1

        self.ctx.variables[stmt.variable] = start
        if step == 0:
            return

        cap = self.ctx.config.max_loop_iterations
        iterations = 0
        counter = start
        while (counter <= end) if step > 0 else (counter >= end):
            if self._should_abort_loop():
                break
            if iterations >= cap:
                await self._report_runaway('For', stmt.line)
                break
            iterations += 1
            self.ctx.variables[stmt.variable] = counter
            await self.execute_block(stmt.body)
            # The body may have changed the counter
            counter = normalize_number(to_number(self.ctx.variables.get(stmt.variable, counter)) + step)
            self.ctx.variables[stmt.variable] = counter

    async def _execute_while(self, stmt: While):
        cap = self.ctx.config.max_loop_iterations
        iterations = 0
        while not self._should_abort_loop():
            if not is_truthy(await self.evaluate(stmt.condition)):
                break
            if iterations >= cap:
                await self._report_runaway('While', stmt.line)
                break
            iterations += 1
            await self.execute_block(stmt.body)

    async def _execute_do_loop(self, stmt: DoLoop):
        cap = self.ctx.config.max_loop_iterations
        iterations = 0
        while not self._should_abort_loop():
            if iterations >= cap:
                await self._report_runaway('Do', stmt.line)
                break
            iterations += 1
            await self.execute_block(stmt.body)
            if stmt.condition is not None:
                result = is_truthy(await self.evaluate(stmt.condition))
                if result == stmt.until:
                    break

    # ========================================================================
    # Expressions
    # ========================================================================

    async def evaluate(self, node: ASTNode) -> Any:
        """Evaluate an expression node"""
        if isinstance(node, (NumberLiteral, StringLiteral, BooleanLiteral)):
            return node.value

        elif isinstance(node, NothingLiteral):
            return None

        elif isinstance(node, Identifier):
            return self._lookup_identifier(node.name)

        elif isinstance(node, Member):
            return await self._evaluate_member(node)

        elif isinstance(node, CallExpr):
            args = [await self.evaluate(arg) for arg in node.args]
            return await self.call(node.target, args)

        elif isinstance(node, Binary):
            left = await self.evaluate(node.left)
            right = await self.evaluate(node.right)
            return await self._apply_binary(node.op, left, right)

        elif isinstance(node, Unary):
            operand = await self.evaluate(node.operand)
            if node.op == '-':
                return normalize_number(-to_number(operand))
            if node.op == 'not':
                return not is_truthy(operand)
            raise FormScriptError(E_RUNTIME_ERROR, f"Unknown unary operator: {node.op}", self.current_line)

        elif isinstance(node, Index):
            container = await self.evaluate(node.object)
            key = await self.evaluate(node.index)
            return index_value(container, key)

        else:
            raise FormScriptError(E_RUNTIME_ERROR, f"Unknown expression type: {type(node).__name__}",
                                  self.current_line)

    def _lookup_identifier(self, name: str) -> Any:
        if name == 'Me':
            return 'Me'
        if name in self.ctx.variables:
            return self.ctx.variables[name]
        if self.ctx.has_component(name):
            return name
        constant = CONSTANTS.get(name.lower())
        if constant is not None:
            return constant
        # Unknown names evaluate to themselves
        return name

    def _resolve_component(self, node: ASTNode) -> Optional[str]:
        """Name of the component an object expression refers to, if any"""
        if isinstance(node, Identifier):
            if node.name == 'Me':
                form = self.ctx.form_name
                return form if form and self.ctx.has_component(form) else None
            if is_host_object(self.ctx.variables.get(node.name)):
                return None
            if self.ctx.has_component(node.name):
                return node.name
            return None
        if isinstance(node, Member) and isinstance(node.object, Identifier) and node.object.name == 'Me':
            if self.ctx.has_component(node.property):
                return node.property
        return None

    def _namespace(self, node: ASTNode) -> Optional[str]:
        """Lowercase static class name (Console, Math, ...) when node names one"""
        if not isinstance(node, Identifier):
            return None
        if node.name in self.ctx.variables or self.ctx.has_component(node.name):
            return None
        lower = node.name.lower()
        return lower if lower in NAMESPACES else None

    def _component_property(self, component: str, prop: str) -> Any:
        properties = self.ctx.components[component].properties
        key = canonical_property(prop)
        if key == 'count' and isinstance(properties.get('items'), list):
            return len(properties['items'])
        if key in properties:
            return properties[key]
        lowered = prop.lower()
        for name, value in properties.items():
            if name.lower() == lowered:
                return value
        if lowered == 'selecteditem':
            items = properties.get('items')
            index = properties.get('selectedIndex')
            if isinstance(items, list) and isinstance(index, int) and 0 <= index < len(items):
                return items[index]
        return None

    async def _evaluate_member(self, node: Member) -> Any:
        component = self._resolve_component(node.object)
        if component is not None:
            return self._component_property(component, node.property)

        namespace = self._namespace(node.object)
        if namespace is not None:
            return NAMESPACE_CONSTANTS.get((namespace, node.property.lower()))

        owner = await self.evaluate(node.object)
        prop = node.property.lower()
        if is_host_object(owner):
            return owner.get_member(node.property)
        if isinstance(owner, str):
            if prop in STRING_PROPERTIES:
                return call_string_method(owner, prop, [])
            return None
        if isinstance(owner, list):
            if prop in ('count', 'length'):
                return len(owner)
            return None
        if isinstance(owner, dict):
            if node.property in owner:
                return owner[node.property]
            for key, value in owner.items():
                if isinstance(key, str) and key.lower() == prop:
                    return value
        return None

    async def _apply_binary(self, op: str, left: Any, right: Any) -> Any:
        if op in ARITHMETIC_OPERATORS:
            try:
                return await self._apply_arithmetic(op, left, right)
            except (ValueError, OverflowError):
                message = "Invalid exponentiation" if op == '^' else "Arithmetic overflow"
                await self.ctx.report_error(message, self.current_line)
                return 0
        if op == '&':
            return to_display(left) + to_display(right)
        if op == '=':
            return loose_equals(left, right)
        if op == '<>':
            return not loose_equals(left, right)
        if op in ('<', '>', '<=', '>='):
            return compare(op, left, right)
        if op == 'and':
            return is_truthy(left) and is_truthy(right)
        if op == 'or':
            return is_truthy(left) or is_truthy(right)
        raise FormScriptError(E_RUNTIME_ERROR, f"Unknown binary operator: {op}", self.current_line)

    async def _apply_arithmetic(self, op: str, left: Any, right: Any) -> Any:
        a, b = to_number(left), to_number(right)
        if op == '+':
            return normalize_number(a + b)
        if op == '-':
            return normalize_number(a - b)
        if op == '*':
            return normalize_number(a * b)
        if op == '^':
            return normalize_number(math.pow(a, b))
        if b == 0:
            await self.ctx.report_error("Division by zero", self.current_line)
            return 0
        if op == '/':
            return normalize_number(a / b)
        if op == '\\':
            return math.floor(a / b)
        return normalize_number(math.fmod(a, b))

    # ========================================================================
    # Calls
    # ========================================================================

    async def call(self, target: ASTNode, args: List[Any]) -> Any:
        """Dispatch a call; returns None for calls that produce no value"""
        if isinstance(target, Member):
            return await self._call_member(target, args)
        if isinstance(target, Identifier):
            return await self._call_named(target.name, args)
        # (expr)(key) indexes into the value
        value = await self.evaluate(target)
        return index_value(value, args[0]) if args else value

    async def _call_pure(self, name: str, func, args: List[Any]) -> Any:
        try:
            return func(args)
        except (ValueError, OverflowError, ZeroDivisionError) as e:
            await self.ctx.report_error(f"{name}: {e}", self.current_line)
            return 0

    async def _call_member(self, target: Member, args: List[Any]) -> Any:
        method = target.property.lower()
        owner_node = target.object

        # ListBox1.Items.Add(...)
        if isinstance(owner_node, Member):
            component = self._resolve_component(owner_node.object)
            if component is not None:
                handled, result = await self._call_list_method(component, owner_node.property, method, args)
                if handled:
                    return result

        namespace = self._namespace(owner_node)
        if namespace is not None:
            return await self._call_namespace(namespace, method, args)

        component = self._resolve_component(owner_node)
        if component is not None:
            return await self._call_component_method(component, target.property, args)

        if isinstance(owner_node, Identifier) and owner_node.name == 'Me':
            if method == 'close':
                self.ctx.stop()
            return None

        owner = await self.evaluate(owner_node)
        if is_host_object(owner):
            return await owner.invoke_member(target.property, args)
        if isinstance(owner, str):
            return call_string_method(owner, method, args)
        if isinstance(owner, list) and method == 'count':
            return len(owner)

        logger.debug("unknown call target %s.%s", type(owner).__name__, target.property)
        return None

    async def _call_namespace(self, namespace: str, method: str, args: List[Any]) -> Any:
        ctx = self.ctx
        first = args[0] if args else None

        if namespace == 'messagebox' and method == 'show':
            await call_host(ctx.callbacks.on_message_box, to_display(first))
            return None

        if namespace == 'console':
            if method in ('writeline', 'write'):
                text = ''.join(to_display(a) for a in args)
                if method == 'writeline':
                    ctx.console_output.append(text)
                    await call_host(ctx.callbacks.on_console_log, text)
                else:
                    await call_host(ctx.callbacks.on_console_write, text)
                return None
            if method == 'readline':
                return to_display(await call_host(ctx.callbacks.on_console_read_line))
            if method == 'readkey':
                return to_display(await call_host(ctx.callbacks.on_console_read_key))
            if method == 'clear':
                ctx.console_output.clear()
                return None

        if namespace == 'file':
            name = to_display(first)
            if method in ('writealltext', 'appendalltext'):
                content = to_display(args[1] if len(args) > 1 else None)
                extension = to_display(args[2]) if len(args) > 2 else ctx.config.default_file_extension
                if method == 'appendalltext':
                    existing = await call_host(ctx.callbacks.on_file_read_all_text, name, extension)
                    content = to_display(existing) + content
                await call_host(ctx.callbacks.on_file_write_all_text, name, content, extension)
                return None
            if method == 'readalltext':
                extension = to_display(args[1]) if len(args) > 1 else ctx.config.default_file_extension
                return to_display(await call_host(ctx.callbacks.on_file_read_all_text, name, extension))

        if namespace == 'math' and method in MATH_FUNCTIONS:
            return await self._call_pure(f"Math.{method}", MATH_FUNCTIONS[method], args)

        if namespace == 'convert' and method in CONVERT_FUNCTIONS:
            return await self._call_pure(f"Convert.{method}", CONVERT_FUNCTIONS[method], args)

        func = TYPE_FUNCTIONS.get((namespace, method))
        if func is not None:
            return await self._call_pure(f"{namespace}.{method}", func, args)

        logger.debug("unknown method %s.%s", namespace, method)
        return None

    async def _call_list_method(self, component: str, prop: str, method: str, args: List[Any]) -> Tuple[bool, Any]:
        """Items.Add/Insert/Remove/RemoveAt/Clear/Contains/IndexOf on a list property"""
        key = canonical_property(prop)
        current = self.ctx.components[component].properties.get(key)
        if not isinstance(current, list):
            if key != 'items':
                return False, None
            current = []

        items = list(current)
        value = args[0] if args else None

        if method == 'contains':
            return True, any(loose_equals(item, value) for item in items)
        if method == 'indexof':
            for i, item in enumerate(items):
                if loose_equals(item, value):
                    return True, i
            return True, -1

        result = None
        if method == 'add':
            items.append(to_display(value))
            result = len(items) - 1
        elif method == 'insert':
            items.insert(int(to_number(value)), to_display(args[1] if len(args) > 1 else None))
        elif method == 'remove':
            for i, item in enumerate(items):
                if loose_equals(item, value):
                    del items[i]
                    break
            else:
                return True, None
        elif method == 'removeat':
            index = int(to_number(value))
            if not 0 <= index < len(items):
                return True, None
            del items[index]
        elif method == 'clear':
            items = []
        else:
            return False, None

        await self.ctx.set_property(component, key, items)
        return True, result

    async def _call_component_method(self, component: str, method_name: str, args: List[Any]) -> Any:
        ctx = self.ctx
        method = method_name.lower()
        properties = ctx.components[component].properties

        if method == 'clear':
            if isinstance(properties.get('items'), list):
                await ctx.set_property(component, 'items', [])
            else:
                await ctx.set_property(component, 'text', '')
            return None
        if method == 'focus':
            logger.debug("focus requested for %s", component)
            return None
        if method in ('show', 'hide'):
            await ctx.set_property(component, 'visible', method == 'show')
            return None
        if method in ('start', 'stop'):
            await ctx.set_property(component, 'enabled', method == 'start')
            return None
        if method == 'appendtext':
            text = to_display(properties.get('text')) + to_display(args[0] if args else None)
            await ctx.set_property(component, 'text', text)
            return None
        if method == 'close':
            if component == ctx.form_name:
                ctx.stop()
            return None
        if method == 'performclick':
            await self.execute_handler(f"{component}_Click")
            return None

        # ListBox1.Items(0): calling a property indexes into it
        value = self._component_property(component, method_name)
        if args:
            return index_value(value, args[0])
        return value

    async def _call_named(self, name: str, args: List[Any]) -> Any:
        ctx = self.ctx
        lower = name.lower()

        constructor = CONSTRUCTORS.get(lower)
        if constructor is not None:
            return constructor(args)

        if lower == 'msgbox':
            await call_host(ctx.callbacks.on_message_box, to_display(args[0] if args else None))
            return None

        if lower == 'inputbox':
            prompt = to_display(args[0] if args else None)
            title = to_display(args[1]) if len(args) > 1 else None
            default = to_display(args[2]) if len(args) > 2 else None
            return to_display(await call_host(ctx.callbacks.on_input_box, prompt, title, default))

        if lower == 'evaluateexpression':
            try:
                return evaluate_math_expression(args[0] if args else '')
            except FormScriptError as e:
                await ctx.report_error(e.message, self.current_line)
                return 0

        func = FUNCTIONS.get(lower)
        if func is not None:
            return await self._call_pure(name, func, args)

        if name in ctx.handlers:
            await self.execute_handler(name)
            return None
        for key in ctx.handlers:
            if key.lower() == lower:
                await self.execute_handler(key)
                return None

        if name in ctx.variables:
            value = ctx.variables[name]
            return index_value(value, args[0]) if args else value

        logger.debug("unknown function %s", name)
        return None


__all__ = [
    'Interpreter',
    'zero_value',
]
