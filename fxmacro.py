from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator
import logging
import pathlib
import re

from fxbuiltins import ExpressionError, call_builtin, evaluate_expression, is_builtin
from fxcore import MACRO_MARKER, MULTILINE_MARKER, Direction, direction_markers, is_compatible_direction
from fxsource import FXCoreSyntaxError, SourceLine, Statement

if TYPE_CHECKING:
    from fxcoremp import FXCoreSession

logger = logging.getLogger(__name__)

MACRO_DIRECTIVE = "$macro"
END_MACRO_DIRECTIVE = "$endmacro"
INCLUDE_DIRECTIVE = "$include"
CONSTANT_DIRECTIVE = ".equ"

# Substitution of macro arguments inside a macro body, '${name}'.
_argument_pattern = re.compile(r"\$\{([^}]*)\}")

def is_name_character(character: str) -> bool:
    return character.isalnum() or character == "_"

def is_directive(text: str, directive: str) -> bool:
    # Directive keyword followed by whitespace or the end of the text.
    text = text.lower()
    return text == directive or text.startswith(f"{directive} ") or text.startswith(f"{directive}\t")

# region macro definitions

@dataclass(frozen=True)
class MacroParameter():
    name: str
    direction: Direction = Direction.ANY

    @classmethod
    def parse(cls, text: str, source: SourceLine | None = None) -> MacroParameter:
        text = text.strip()
        direction = Direction.ANY

        # Direction markers may trail or lead the parameter name: 'value<=', '<=value'.
        for (marker, marker_direction) in direction_markers.items():
            if text.endswith(marker):
                text = text[:-len(marker)].strip()
                direction = marker_direction
                break
            if text.startswith(marker):
                text = text[len(marker):].strip()
                direction = marker_direction
                break

        if text == "" or not all(is_name_character(character) for character in text):
            raise FXCoreSyntaxError(f"Invalid macro parameter name '{text}'.", source)
        return cls(text, direction)

@dataclass(frozen=True)
class MacroArgument():
    value: str
    direction: Direction = Direction.ANY

    @classmethod
    def parse_named(cls, text: str, source: SourceLine | None = None) -> tuple[str, MacroArgument]:
        # 'name=value', 'name<=value', 'name=>value' or 'name<=>value'.
        name, marker, value = text.partition("=")
        direction = Direction.ANY
        for (candidate, candidate_direction) in direction_markers.items():
            if candidate in text:
                name, marker, value = text.partition(candidate)
                direction = candidate_direction
                break

        name = name.strip()
        value = value.strip()
        if name == "" or value == "":
            raise FXCoreSyntaxError(f"Invalid argName=argValue specification '{text.strip()}'.", source)
        return (name, cls(value, direction))

@dataclass(frozen=True)
class Macro():
    name: str
    parameters: tuple[MacroParameter, ...]
    lines: tuple[Statement, ...]
    source: SourceLine

    @property
    def key(self) -> str:
        return self.name.upper()

    @property
    def source_file(self) -> str:
        return pathlib.Path(self.source.unit).name

    def find_parameter(self, name: str) -> MacroParameter | None:
        name = name.upper()
        for parameter in self.parameters:
            if parameter.name.upper() == name:
                return parameter
        return None

    @classmethod
    def parse(cls, definition: list[Statement]) -> Macro:
        """
        Build a macro from its definition statements. The first statement is the '$macro' header:

            $macro NAME body text
            $macro NAME(param1, param2=>, <=>param3) body text
            $macro NAME(params) ++

        A header ending in '++' starts a multi-line definition, every following statement (up to, but excluding
        the '$endmacro') is a body line. Body lines are kept as written, argument substitution happens on
        invocation.
        """
        header_statement = definition[0]
        source = header_statement.source
        header = header_statement.text.replace("\t", " ").strip()
        if not is_directive(header, MACRO_DIRECTIVE):
            raise FXCoreSyntaxError(f"Invalid macro definition, expected '{MACRO_DIRECTIVE}'.", source)
        header = header[len(MACRO_DIRECTIVE):].strip()
        if header.endswith(MULTILINE_MARKER):
            header = header[:-len(MULTILINE_MARKER)].strip()

        # Macro name ends at the first whitespace or the opening paren of the parameter list.
        i_name_end = 0
        while i_name_end < len(header) and not header[i_name_end].isspace() and header[i_name_end] != "(":
            i_name_end += 1
        name = header[:i_name_end]
        remainder = header[i_name_end:]

        # Enforce macro names so we can reliably parse them in source lines.
        if name == "":
            raise FXCoreSyntaxError("Invalid macro definition, missing macro name.", source)
        if MACRO_MARKER in name:
            raise FXCoreSyntaxError(f"Macro name '{name}' cannot contain the '{MACRO_MARKER}' symbol.", source)
        for character in name:
            if not is_name_character(character):
                raise FXCoreSyntaxError(f"Macro name '{name}' contains invalid character '{character}'.", source)
        if is_builtin(name):
            raise FXCoreSyntaxError(f"Macro name '{name}' is reserved, names starting with '_' are built-in functions.", source)

        # Parameter list.
        parameters: list[MacroParameter] = []
        if remainder.startswith("("):
            i_close = remainder.find(")")
            if i_close < 0:
                raise FXCoreSyntaxError(f"Invalid definition of macro '{name}', missing or invalid argument list.", source)
            parameter_text = remainder[1:i_close].strip()
            if parameter_text != "":
                parameters = [MacroParameter.parse(text, source) for text in parameter_text.split(",")]
            remainder = remainder[(i_close + 1):]

        # Check for duplicate parameter names.
        seen_names: set[str] = set()
        for parameter in parameters:
            if parameter.name.upper() in seen_names:
                raise FXCoreSyntaxError(f"Macro '{name}' declares parameter '{parameter.name}' more than once.", source)
            seen_names.add(parameter.name.upper())

        # Text following the parameter list is the first (or only) body line.
        lines: list[Statement] = []
        if remainder.strip() != "":
            lines.append(Statement.parse(remainder.strip(), source))

        # Remaining statements are body lines.
        for statement in definition[1:]:
            if is_directive(statement.text, MACRO_DIRECTIVE):
                raise FXCoreSyntaxError(f"Nested macro definition in macro '{name}'. Maybe missing {END_MACRO_DIRECTIVE} before this?", statement.source)
            if is_directive(statement.text, INCLUDE_DIRECTIVE):
                raise FXCoreSyntaxError(f"Include not allowed in definition of macro '{name}'.", statement.source)
            lines.append(statement)

        return cls(name, tuple(parameters), tuple(lines), source)

class MacroTable():
    """Macro definitions, names are case-insensitive."""

    def __init__(self):
        self._macros: dict[str, Macro] = {}

    def __len__(self) -> int:
        return len(self._macros)

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._macros

    def __iter__(self) -> Iterator[Macro]:
        return iter(self._macros.values())

    def define(self, macro: Macro) -> Macro:
        # Check that macro is unique.
        existing_macro = self._macros.get(macro.key)
        if existing_macro is not None:
            raise FXCoreSyntaxError(f"Macro name '{macro.name}' is already defined in {existing_macro.source.describe()}.", macro.source)

        logger.debug(f"Defined macro '{macro.name}' with {len(macro.parameters)} parameters and {len(macro.lines)} lines")
        self._macros[macro.key] = macro
        return macro

    def find_macro(self, name: str) -> Macro | None:
        return self._macros.get(name.upper())

# endregion macro definitions

# region macro expansion

@dataclass
class _Cursor():
    text: str
    position: int

    def peek(self) -> str:
        if self.position < len(self.text):
            return self.text[self.position]
        return ""

    def take_name(self) -> str:
        start = self.position
        while self.position < len(self.text) and is_name_character(self.text[self.position]):
            self.position += 1
        return self.text[start:self.position]

    def take_balanced(self) -> str | None:
        # Text between the paren at the cursor and its matching closing paren, None if unbalanced.
        depth = 0
        start = self.position
        for i_character in range(start, len(self.text)):
            match self.text[i_character]:
                case "(":
                    depth += 1
                case ")":
                    depth -= 1
                    if depth == 0:
                        self.position = i_character + 1
                        return self.text[(start + 1):i_character]
        return None

def split_arguments(text: str | None) -> list[str]:
    # Argument lists contain no unexpanded invocations, every comma separates arguments.
    if text is None or text.strip() == "":
        return []
    return text.split(",")

def begin_marker(name: str) -> str:
    return f"; ---- begin macro {name}"

def end_marker(name: str) -> str:
    return f"; ---- end macro {name}"

class MacroExpander():
    """
    Expands macro and built-in function invocations, inside-out.

    Each line is scanned right to left for the invocation marker. The rightmost invocation is always the
    innermost one, so by the time an invocation's argument list is read every invocation nested in it has already
    been replaced by its literal result.
    """

    def __init__(self, session: FXCoreSession):
        self.session = session

    def expand(self, statements: list[Statement]) -> list[tuple[str, SourceLine | None]]:
        """Expand all statements, each expanded line is paired with the source line it originates from."""
        expanded: list[tuple[str, SourceLine | None]] = []
        for statement in statements:
            expanded += [ (text, statement.source) for text in self.expand_statement(statement) ]
        return expanded

    def expand_statement(self, statement: Statement, depth: int = 0) -> list[str]:
        # Lines of block comments are not processed.
        if statement.ignore:
            return [statement.full_text]

        text = statement.code
        start = text.rfind(MACRO_MARKER)
        if start < 0:
            self._define_constant(statement.text, statement.source)
            return [statement.full_text]

        # Trailing whitespace guarantees every name ends before the end of the text.
        text = f"{text} "
        while start >= 0:
            cursor = _Cursor(text, start + 1)
            name = cursor.take_name()
            if name == "":
                raise FXCoreSyntaxError(f"Missing or invalid macro name in '{text.strip()}'.", statement.source)

            argument_text: str | None = None
            if cursor.peek() == "(":
                argument_text = cursor.take_balanced()
                if argument_text is None:
                    raise FXCoreSyntaxError(f"Invalid macro argument list, unbalanced parentheses in '{text.strip()}'.", statement.source)

            lines = self._invoke(name, argument_text, statement, depth)

            # Splice the expansion back into the line.
            match len(lines):
                case 0:
                    text = text[:start] + text[cursor.position:]
                case 1:
                    text = text[:start] + lines[0] + text[cursor.position:]
                case _:
                    # A multi-line expansion replaces the whole line, no further scanning on it.
                    return [begin_marker(name), *lines, end_marker(name)]

            # Scan leftward for more invocations.
            start = text.rfind(MACRO_MARKER, 0, start)

        text = text.strip()
        self._define_constant(Statement.parse(text, statement.source).text, statement.source)
        if statement.comment != "":
            text = f"{text} {statement.comment}"
        return [text]

    def _invoke(self, name: str, argument_text: str | None, statement: Statement, depth: int) -> list[str]:
        if is_builtin(name):
            return call_builtin(self.session, name, argument_text or "", statement.source)

        # Find macro to be evaluated.
        macro = self.session.macros.find_macro(name)
        if macro is None:
            raise FXCoreSyntaxError(f"No definition found for macro '{name}'.", statement.source)
        if depth >= self.session.max_macro_depth:
            raise FXCoreSyntaxError(f"Expansion of macro '{macro.name}' exceeds the maximum nesting depth of {self.session.max_macro_depth}, the macro may be recursive.", statement.source)

        arguments = self.bind_arguments(macro, split_arguments(argument_text), statement.source)
        return self.expand_macro(macro, arguments, depth)

    def bind_arguments(self, macro: Macro, arguments: list[str], source: SourceLine | None = None) -> dict[str, MacroArgument]:
        """Map each declared parameter name to its argument, either all positional or all named."""
        if len(arguments) != len(macro.parameters):
            raise FXCoreSyntaxError(f"Number of arguments ({len(arguments)}) does not match definition ({len(macro.parameters)}) of macro '{macro.name}'.", source)

        bound: dict[str, MacroArgument] = {}
        n_positional = 0
        n_named = 0
        for (i_argument, text) in enumerate(arguments):
            if "=" not in text:
                # Positional argument, always direction ANY.
                if n_named > 0:
                    raise FXCoreSyntaxError(f"Arguments of macro '{macro.name}' mix named and positional styles, which is not allowed.", source)
                n_positional += 1
                bound[macro.parameters[i_argument].name] = MacroArgument(text.strip())
                continue

            # Named argument.
            if n_positional > 0:
                raise FXCoreSyntaxError(f"Arguments of macro '{macro.name}' mix named and positional styles, which is not allowed.", source)
            n_named += 1
            (name, argument) = MacroArgument.parse_named(text, source)
            parameter = macro.find_parameter(name)
            if parameter is None:
                raise FXCoreSyntaxError(f"Macro '{macro.name}' has no parameter named '{name}'.", source)
            if parameter.name in bound:
                raise FXCoreSyntaxError(f"Argument '{name}' of macro '{macro.name}' is given more than once.", source)
            bound[parameter.name] = argument

        # Every parameter must be supplied with a compatible direction.
        for parameter in macro.parameters:
            argument = bound.get(parameter.name)
            if argument is None:
                raise FXCoreSyntaxError(f"Invocation of macro '{macro.name}' is missing argument '{parameter.name}'.", source)
            if not is_compatible_direction(parameter.direction, argument.direction):
                raise FXCoreSyntaxError(f"IN/OUT direction mismatch on argument '{parameter.name}' of macro '{macro.name}'.", source)

        return bound

    def virtual_arguments(self, macro: Macro) -> dict[str, str]:
        # Unique id at the macro-invocation scope.
        self.session.unique += 1
        return {
            ":unique": str(self.session.unique),
            ":sourcefile": macro.source_file,
            ":sourcefile_root": self.session.source_name,
            ":outputfile": self.session.output_name,
        }

    def expand_macro(self, macro: Macro, arguments: dict[str, MacroArgument], depth: int = 0) -> list[str]:
        values = { name: argument.value for (name, argument) in arguments.items() }
        values |= self.virtual_arguments(macro)
        logger.debug(f"Expanding macro '{macro.name}' ({', '.join(f'{name}={value}' for (name, value) in values.items())})")

        expanded: list[str] = []
        for line in macro.lines:
            text = substitute_arguments(line.full_text, values, line.source)
            expanded += self.expand_statement(Statement.parse(text, line.source), depth + 1)
        return expanded

    def _define_constant(self, text: str, source: SourceLine | None):
        # '.equ NAME expression', remember the value for _eval.
        parts = text.split(None, 2)
        if len(parts) != 3 or parts[0].lower() != CONSTANT_DIRECTIVE:
            return

        name = parts[1].upper()
        expression = parts[2].strip()
        try:
            self.session.symbols[name] = evaluate_expression(expression, self.session.symbols)
        except ExpressionError:
            # Not (yet) a number, keep the text.
            self.session.symbols[name] = expression
        logger.debug(f"Symbol {name} = {self.session.symbols[name]}")

def substitute_arguments(text: str, values: dict[str, str], source: SourceLine | None = None) -> str:
    """
    Replace every '${name}' with its value. Names are case-sensitive and the substitution is a single pass, a
    substituted value is never scanned again.
    """
    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in values:
            raise FXCoreSyntaxError(f"Unresolved macro argument '{match.group(0)}'.", source)
        return values[name]

    return _argument_pattern.sub(_substitute, text)

# endregion macro expansion
