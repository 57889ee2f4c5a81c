from __future__ import annotations
from typing import TYPE_CHECKING, Callable
import ast
import logging
import numpy as np

from fxsource import FXCoreSyntaxError, SourceLine

if TYPE_CHECKING:
    from fxcoremp import FXCoreSession

logger = logging.getLogger(__name__)

Number = int | float

class ExpressionError(ValueError):
    pass

# region expression evaluation

_functions: dict[str, Callable[..., Number]] = {
    "abs": np.abs,
    "sqrt": np.sqrt,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "exp": np.exp,
    "log": np.log,
    "log2": np.log2,
    "log10": np.log10,
    "floor": np.floor,
    "ceil": np.ceil,
    "round": np.round,
    "pow": np.power,
    "min": lambda *values: np.min(values),
    "max": lambda *values: np.max(values),
}

_constants: dict[str, float] = {
    "PI": float(np.pi),
    "E": float(np.e),
}

# Size limit for integer results of "**" and "<<".
MAX_INTEGER_BITS = 4096

def _power(a: Number, b: Number) -> Number:
    if isinstance(a, int) and isinstance(b, int) and b > 0 and abs(a) > 1 and (a.bit_length() - 1) * b > MAX_INTEGER_BITS:
        raise ExpressionError(f"Result of {a} ** {b} exceeds {MAX_INTEGER_BITS} bits.")
    return a ** b

def _shift_left(a: Number, b: Number) -> int:
    if int(a) != 0 and int(a).bit_length() + int(b) > MAX_INTEGER_BITS:
        raise ExpressionError(f"Result of {a} << {b} exceeds {MAX_INTEGER_BITS} bits.")
    return int(a) << int(b)

_binary_operators: dict[type, Callable[[Number, Number], Number]] = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: lambda a, b: a / b,
    ast.FloorDiv: lambda a, b: a // b,
    ast.Mod: lambda a, b: a % b,
    ast.Pow: _power,
    ast.BitAnd: lambda a, b: int(a) & int(b),
    ast.BitOr: lambda a, b: int(a) | int(b),
    ast.BitXor: lambda a, b: int(a) ^ int(b),
    ast.LShift: _shift_left,
    ast.RShift: lambda a, b: int(a) >> int(b),
}

def _plain_number(value) -> Number:
    # numpy scalars are converted back to python numbers.
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool):
        return int(value)
    if not isinstance(value, (int, float)):
        raise ExpressionError(f"Value '{value}' is not a number.")
    return value

def evaluate_expression(expression: str, symbols: dict[str, Number | str]) -> Number:
    """
    Evaluate an arithmetic expression. Names are resolved (case-insensitively) through `symbols`, whose keys are
    upper case. A symbol that holds text instead of a number could not be evaluated when it was defined and can't
    be used in an expression.
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exception:
        raise ExpressionError(f"Invalid expression '{expression.strip()}': {exception.msg}.") from exception

    def _evaluate(node: ast.AST) -> Number:
        match node:
            case ast.Expression():
                return _evaluate(node.body)
            case ast.Constant(value=value) if isinstance(value, (int, float)) and not isinstance(value, bool):
                return value
            case ast.Name(id=name):
                key = name.upper()
                if key in symbols:
                    value = symbols[key]
                    if isinstance(value, str):
                        raise ExpressionError(f"Symbol '{name}' has no numeric value ('{value}').")
                    return value
                if key in _constants:
                    return _constants[key]
                raise ExpressionError(f"Unknown symbol '{name}'.")
            case ast.UnaryOp(op=ast.USub(), operand=operand):
                return -_evaluate(operand)
            case ast.UnaryOp(op=ast.UAdd(), operand=operand):
                return +_evaluate(operand)
            case ast.UnaryOp(op=ast.Invert(), operand=operand):
                return ~int(_evaluate(operand))
            case ast.BinOp(left=left, op=op, right=right) if type(op) in _binary_operators:
                return _binary_operators[type(op)](_evaluate(left), _evaluate(right))
            case ast.Call(func=ast.Name(id=name), args=args, keywords=[]) if name.lower() in _functions:
                return _plain_number(_functions[name.lower()](*[_evaluate(arg) for arg in args]))
            case _:
                raise ExpressionError(f"Unsupported expression element '{ast.unparse(node)}'.")

    try:
        with np.errstate(all="raise"):
            return _plain_number(_evaluate(tree))
    except ExpressionError:
        raise
    except (ArithmeticError, TypeError, ValueError) as exception:
        raise ExpressionError(f"Failed to evaluate '{expression.strip()}': {exception}.") from exception

def format_number(value: Number) -> str:
    # Plain decimal text, integral values without a fraction, never exponential notation.
    if isinstance(value, int):
        return str(value)
    if not np.isfinite(value):
        raise ExpressionError(f"Result '{value}' is not a finite number.")
    if float(value).is_integer():
        return str(int(value))
    return np.format_float_positional(value, trim="-")

def format_counter(value: Number) -> str:
    # Floating point counters keep their fraction so the counter type stays visible.
    if isinstance(value, int):
        return str(value)
    return np.format_float_positional(value, trim="0")

def parse_number(text: str) -> Number:
    text = text.strip()
    if "." in text:
        return float(text)
    return int(text, 0)

# endregion expression evaluation

# region built-in functions

def _unquote(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text

def builtin_log(session: FXCoreSession, arguments: str, source: SourceLine | None) -> list[str]:
    message = ", ".join(_unquote(argument) for argument in arguments.split(",")) if arguments.strip() else ""
    if source is None:
        print(f"LOG: {message}")
    else:
        print(f"LOG ({source.describe()}): {message}")
    return []

def builtin_count(session: FXCoreSession, arguments: str, source: SourceLine | None) -> list[str]:
    parts = [_unquote(argument) for argument in arguments.split(",")]
    if len(parts) < 2 or len(parts) > 3:
        raise FXCoreSyntaxError(f"Function '_count' expects 2 or 3 arguments (name, operation, [value]) but {len(parts)} were given.", source)

    name = parts[0].upper()
    operation = parts[1].lower()
    value_text = parts[2] if len(parts) == 3 else ""
    if name == "":
        raise FXCoreSyntaxError("Function '_count' requires a counter name.", source)

    # Counters are created on first reference.
    current = session.counters.setdefault(name, 0)

    # Parse the operand value.
    value: Number | None = None
    if value_text != "":
        try:
            value = parse_number(value_text)
        except ValueError:
            raise FXCoreSyntaxError(f"Function '_count' value '{value_text}' is not a number.", source)

    match operation:
        case "get":
            if value is not None:
                raise FXCoreSyntaxError(f"Function '_count' operation 'get' does not take a value, found '{value_text}'.", source)
            return [format_counter(current)]
        case "set":
            if value is None:
                raise FXCoreSyntaxError("Function '_count' operation 'set' requires a value.", source)
            session.counters[name] = value
            return []
        case "add":
            if value is None:
                raise FXCoreSyntaxError("Function '_count' operation 'add' requires a value.", source)
            session.counters[name] = current + value
            return [format_counter(current)]
        case "inc":
            session.counters[name] = current + (1 if value is None else value)
            return []
        case _:
            raise FXCoreSyntaxError(f"Function '_count' has no operation '{parts[1]}', expected get, set, add or inc.", source)

def builtin_eval(session: FXCoreSession, arguments: str, source: SourceLine | None) -> list[str]:
    expression = _unquote(arguments)
    try:
        result = format_number(evaluate_expression(expression, session.symbols))
    except ExpressionError as exception:
        raise FXCoreSyntaxError(f"Function '_eval' failed: {exception}", source) from exception
    logger.debug(f"_eval({expression}) = {result}")
    return [result]

builtin_functions: dict[str, Callable[[FXCoreSession, str, SourceLine | None], list[str]]] = {
    "_log": builtin_log,
    "_count": builtin_count,
    "_eval": builtin_eval,
}

def is_builtin(name: str) -> bool:
    return name.startswith("_")

def call_builtin(session: FXCoreSession, name: str, arguments: str, source: SourceLine | None) -> list[str]:
    function = builtin_functions.get(name.lower())
    if function is None:
        raise FXCoreSyntaxError(f"Unknown built-in function '{name}'.", source)
    return function(session, arguments, source)

# endregion built-in functions
