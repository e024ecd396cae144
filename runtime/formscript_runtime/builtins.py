"""
FormScript built-ins - value coercion and pure helper functions

Everything here is synchronous and side-effect free. Built-ins that talk to
the host (MsgBox, InputBox, Console, File) live in the interpreter because
they go through the host callbacks.

Coercion rules:
    - Numbers: ints stay ints; whole float results are normalized to int.
    - Strings convert to numbers when they parse as one, else to 0.
    - Booleans display as True/False, Nothing displays as "".
"""

import math
import random
import re
from typing import Any, Callable, Dict, List, Optional

from .ast_nodes import ASTNode, NumberLiteral, Binary, Unary
from .errors import FormScriptError, ParseError, E_RUNTIME_ERROR
from .parser import parse_expression


_LEADING_NUMBER = re.compile(r'\s*([+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?)')


# ============================================================================
# Coercions
# ============================================================================

def normalize_number(value: Any) -> Any:
    """Collapse whole floats to int so 4.0 displays and compares as 4"""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def _parse_number(text: str) -> Optional[Any]:
    """Parse numeric text to int or finite float; None when it is not a number"""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return normalize_number(number)


def is_numeric(value: Any) -> bool:
    if isinstance(value, (bool, int, float)):
        return True
    if isinstance(value, str):
        text = value.strip()
        return bool(text) and _parse_number(text) is not None
    return False


def to_number(value: Any) -> Any:
    """Coerce a script value to int or float (non-numeric values become 0)"""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        number = _parse_number(value.strip())
        return 0 if number is None else number
    return 0


def to_display(value: Any) -> str:
    """Script string form of a value"""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'True' if value else 'False'
    if isinstance(value, float):
        value = normalize_number(value)
        return str(value)
    if isinstance(value, list):
        return ','.join(to_display(v) for v in value)
    return str(value)


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return len(value) > 0
    return value is not None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality with numeric coercion when one side is a number"""
    if left is None or right is None:
        return left is None and right is None
    left_is_number = isinstance(left, (int, float))
    right_is_number = isinstance(right, (int, float))
    if left_is_number and right_is_number:
        return left == right
    if left_is_number and isinstance(right, str):
        return is_numeric(right) and to_number(right) == left
    if right_is_number and isinstance(left, str):
        return is_numeric(left) and to_number(left) == right
    return left == right


def compare(op: str, left: Any, right: Any) -> bool:
    """Ordering comparison on the numeric values of both sides"""
    a, b = to_number(left), to_number(right)
    if op == '<':
        return a < b
    if op == '>':
        return a > b
    if op == '<=':
        return a <= b
    return a >= b


def index_value(container: Any, key: Any) -> Any:
    """container(key): list position, dict key, string character or host item"""
    if isinstance(container, (list, str)):
        index = int(to_number(key))
        if 0 <= index < len(container):
            return container[index]
        return None
    if isinstance(container, dict):
        return container.get(key)
    if hasattr(container, 'get_item'):
        return container.get_item(key)
    return None


def _arg(args: List[Any], index: int, default: Any = None) -> Any:
    return args[index] if len(args) > index else default


def _round_half_even(value: Any, digits: int = 0) -> Any:
    return normalize_number(round(float(to_number(value)), int(to_number(digits))))


# ============================================================================
# Conversion functions (CInt, CStr, ...)
# ============================================================================

def convert_to_int(value: Any) -> int:
    return int(round(float(to_number(value))))


def convert_to_double(value: Any) -> Any:
    return to_number(value)


def convert_to_bool(value: Any) -> bool:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ('true', 'false'):
            return text == 'true'
    return is_truthy(to_number(value) if is_numeric(value) else value)


def val(value: Any) -> Any:
    """Val(): the leading numeric prefix of the text, else 0"""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    match = _LEADING_NUMBER.match(to_display(value))
    if not match:
        return 0
    return normalize_number(float(match.group(1)))


# ============================================================================
# String functions
# ============================================================================

def mid(text: Any, start: Any = 1, length: Any = None) -> str:
    s = to_display(text)
    begin = max(int(to_number(start)) - 1, 0)
    if length is None:
        return s[begin:]
    return s[begin:begin + max(int(to_number(length)), 0)]


def left(text: Any, length: Any = 0) -> str:
    return to_display(text)[:max(int(to_number(length)), 0)]


def right(text: Any, length: Any = 0) -> str:
    s = to_display(text)
    count = max(int(to_number(length)), 0)
    return s[-count:] if count else ''


def instr(*args: Any) -> int:
    """InStr([start,] haystack, needle) -> 1-based position or 0"""
    if len(args) >= 3:
        start = max(int(to_number(args[0])), 1)
        haystack, needle = to_display(args[1]), to_display(args[2])
    else:
        start = 1
        haystack, needle = to_display(_arg(list(args), 0)), to_display(_arg(list(args), 1))
    return haystack.find(needle, start - 1) + 1


def chr_(code: Any) -> str:
    return chr(int(to_number(code)))


def asc(text: Any) -> int:
    s = to_display(text)
    return ord(s[0]) if s else 0


# Free functions callable by name, keyed by lowercase name. Each takes the
# evaluated argument list.
FUNCTIONS: Dict[str, Callable[[List[Any]], Any]] = {
    'cint': lambda a: convert_to_int(_arg(a, 0)),
    'clng': lambda a: convert_to_int(_arg(a, 0)),
    'cdbl': lambda a: convert_to_double(_arg(a, 0)),
    'cstr': lambda a: to_display(_arg(a, 0)),
    'cbool': lambda a: convert_to_bool(_arg(a, 0)),
    'val': lambda a: val(_arg(a, 0)),
    'len': lambda a: len(to_display(_arg(a, 0))),
    'mid': lambda a: mid(_arg(a, 0), _arg(a, 1, 1), _arg(a, 2)),
    'left': lambda a: left(_arg(a, 0), _arg(a, 1, 0)),
    'right': lambda a: right(_arg(a, 0), _arg(a, 1, 0)),
    'ucase': lambda a: to_display(_arg(a, 0)).upper(),
    'lcase': lambda a: to_display(_arg(a, 0)).lower(),
    'trim': lambda a: to_display(_arg(a, 0)).strip(),
    'ltrim': lambda a: to_display(_arg(a, 0)).lstrip(),
    'rtrim': lambda a: to_display(_arg(a, 0)).rstrip(),
    'str': lambda a: to_display(_arg(a, 0)),
    'abs': lambda a: abs(to_number(_arg(a, 0))),
    'int': lambda a: math.floor(to_number(_arg(a, 0))),
    'fix': lambda a: math.trunc(to_number(_arg(a, 0))),
    'rnd': lambda a: random.random(),
    'sqr': lambda a: normalize_number(math.sqrt(to_number(_arg(a, 0)))),
    'instr': lambda a: instr(*a),
    'replace': lambda a: to_display(_arg(a, 0)).replace(to_display(_arg(a, 1)), to_display(_arg(a, 2))),
    'space': lambda a: ' ' * max(int(to_number(_arg(a, 0))), 0),
    'strreverse': lambda a: to_display(_arg(a, 0))[::-1],
    'chr': lambda a: chr_(_arg(a, 0)),
    'asc': lambda a: asc(_arg(a, 0)),
    'isnumeric': lambda a: is_numeric(_arg(a, 0)),
    'round': lambda a: _round_half_even(_arg(a, 0), _arg(a, 1, 0)),
}


def call_string_method(text: str, method: str, args: List[Any]) -> Any:
    """Call a .NET-style method on a string value; unknown methods return the string"""
    name = method.lower()
    if name == 'length':
        return len(text)
    if name == 'toupper':
        return text.upper()
    if name == 'tolower':
        return text.lower()
    if name == 'trim':
        return text.strip()
    if name == 'substring':
        start = int(to_number(_arg(args, 0, 0)))
        if len(args) > 1:
            return text[start:start + int(to_number(args[1]))]
        return text[start:]
    if name == 'contains':
        return to_display(_arg(args, 0)) in text
    if name == 'indexof':
        return text.find(to_display(_arg(args, 0)))
    if name == 'replace':
        return text.replace(to_display(_arg(args, 0)), to_display(_arg(args, 1)))
    if name == 'split':
        return text.split(to_display(_arg(args, 0, ',')))
    if name == 'startswith':
        return text.startswith(to_display(_arg(args, 0)))
    if name == 'endswith':
        return text.endswith(to_display(_arg(args, 0)))
    if name == 'tostring':
        return text
    return text


# ============================================================================
# Math / Convert / type helpers
# ============================================================================

MATH_FUNCTIONS: Dict[str, Callable[[List[Any]], Any]] = {
    'abs': lambda a: abs(to_number(_arg(a, 0))),
    'sqrt': lambda a: normalize_number(math.sqrt(to_number(_arg(a, 0)))),
    'pow': lambda a: normalize_number(math.pow(to_number(_arg(a, 0)), to_number(_arg(a, 1)))),
    'max': lambda a: max(to_number(_arg(a, 0)), to_number(_arg(a, 1))),
    'min': lambda a: min(to_number(_arg(a, 0)), to_number(_arg(a, 1))),
    'floor': lambda a: math.floor(to_number(_arg(a, 0))),
    'ceiling': lambda a: math.ceil(to_number(_arg(a, 0))),
    'round': lambda a: _round_half_even(_arg(a, 0), _arg(a, 1, 0)),
    'truncate': lambda a: math.trunc(to_number(_arg(a, 0))),
    'sin': lambda a: normalize_number(math.sin(to_number(_arg(a, 0)))),
    'cos': lambda a: normalize_number(math.cos(to_number(_arg(a, 0)))),
    'tan': lambda a: normalize_number(math.tan(to_number(_arg(a, 0)))),
    'log': lambda a: normalize_number(math.log(to_number(_arg(a, 0)))),
    'exp': lambda a: normalize_number(math.exp(to_number(_arg(a, 0)))),
}

# Math.PI, String.Empty, ...
NAMESPACE_CONSTANTS = {
    ('math', 'pi'): math.pi,
    ('math', 'e'): math.e,
    ('string', 'empty'): '',
    ('environment', 'newline'): '\r\n',
}

# vbCrLf and friends, matched case-insensitively
CONSTANTS = {
    'vbcrlf': '\r\n',
    'vbnewline': '\r\n',
    'vblf': '\n',
    'vbcr': '\r',
    'vbtab': '\t',
}

CONVERT_FUNCTIONS: Dict[str, Callable[[List[Any]], Any]] = {
    'toint16': lambda a: convert_to_int(_arg(a, 0)),
    'toint32': lambda a: convert_to_int(_arg(a, 0)),
    'toint64': lambda a: convert_to_int(_arg(a, 0)),
    'todouble': lambda a: convert_to_double(_arg(a, 0)),
    'tosingle': lambda a: convert_to_double(_arg(a, 0)),
    'todecimal': lambda a: convert_to_double(_arg(a, 0)),
    'tostring': lambda a: to_display(_arg(a, 0)),
    'toboolean': lambda a: convert_to_bool(_arg(a, 0)),
}

# Integer.Parse(...), String.IsNullOrEmpty(...)
TYPE_FUNCTIONS: Dict[tuple, Callable[[List[Any]], Any]] = {
    ('integer', 'parse'): lambda a: convert_to_int(_arg(a, 0)),
    ('long', 'parse'): lambda a: convert_to_int(_arg(a, 0)),
    ('double', 'parse'): lambda a: convert_to_double(_arg(a, 0)),
    ('single', 'parse'): lambda a: convert_to_double(_arg(a, 0)),
    ('string', 'isnullorempty'): lambda a: to_display(_arg(a, 0)) == '',
}


# ============================================================================
# EvaluateExpression
# ============================================================================

def _eval_arithmetic(node: ASTNode) -> Any:
    if isinstance(node, NumberLiteral):
        return node.value
    if isinstance(node, Unary) and node.op == '-':
        return -_eval_arithmetic(node.operand)
    if isinstance(node, Binary):
        a = _eval_arithmetic(node.left)
        b = _eval_arithmetic(node.right)
        if node.op == '+':
            return a + b
        if node.op == '-':
            return a - b
        if node.op == '*':
            return a * b
        if node.op == '^':
            return math.pow(a, b)
        if node.op in ('/', '\\', 'mod'):
            if b == 0:
                raise FormScriptError(E_RUNTIME_ERROR, "Division by zero")
            if node.op == '/':
                return a / b
            if node.op == '\\':
                return math.floor(a / b)
            return math.fmod(a, b)
    raise FormScriptError(E_RUNTIME_ERROR, "Invalid expression")


def evaluate_math_expression(text: Any) -> Any:
    """
    Evaluate an arithmetic expression typed by the user (calculator style).

    Only numbers, parentheses, unary minus and + - * / \\ Mod ^ are allowed.
    Raises FormScriptError for anything else.
    """
    source = to_display(text).strip()
    if not source:
        return 0
    try:
        tree = parse_expression(source)
    except ParseError:
        raise FormScriptError(E_RUNTIME_ERROR, "Invalid expression")
    try:
        return normalize_number(_eval_arithmetic(tree))
    except (ValueError, OverflowError):
        raise FormScriptError(E_RUNTIME_ERROR, "Invalid expression")


__all__ = [
    'normalize_number',
    'is_numeric',
    'to_number',
    'to_display',
    'is_truthy',
    'loose_equals',
    'compare',
    'index_value',
    'val',
    'convert_to_int',
    'convert_to_double',
    'convert_to_bool',
    'FUNCTIONS',
    'MATH_FUNCTIONS',
    'NAMESPACE_CONSTANTS',
    'CONSTANTS',
    'CONVERT_FUNCTIONS',
    'TYPE_FUNCTIONS',
    'call_string_method',
    'evaluate_math_expression',
]
