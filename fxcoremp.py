from __future__ import annotations
from dataclasses import dataclass, field
import argparse
import logging
import pathlib
import sys
import traceback

from fxcore import MAX_MACRO_DEPTH, MULTILINE_MARKER
from fxmacro import END_MACRO_DIRECTIVE, INCLUDE_DIRECTIVE, MACRO_DIRECTIVE, Macro, MacroExpander, MacroTable, is_directive
from fxsource import FXCoreSyntaxError, SourceLine, Statement, attempt
from fxtoon import IfFrame, RenameTable, ToonTranslator

logger = logging.getLogger(__name__)

IF_DIRECTIVE = "$if("
END_IF_DIRECTIVE = "$endif"
SET_DIRECTIVE = "$set"

EXIT_OK = 0
EXIT_INVALID_ARGUMENTS = 1
EXIT_SYNTAX_ERRORS = 2
EXIT_UNEXPECTED_ERROR = 3

@dataclass
class FXCoreSession():
    """All state of one processing run, shared by the macro expander and the TOON translator."""
    macros: MacroTable = field(default_factory=MacroTable)
    counters: dict[str, int | float] = field(default_factory=dict)
    symbols: dict[str, int | float | str] = field(default_factory=dict)
    renames: RenameTable = field(default_factory=RenameTable)
    if_stack: list[IfFrame] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    included_files: list[str] = field(default_factory=list)

    unique: int = 0 # Incremented once per macro invocation.
    if_count: int = 0 # Numbers the labels of structured IF blocks.

    source_name: str = ""
    output_name: str = ""
    max_macro_depth: int = MAX_MACRO_DEPTH

@dataclass
class FXCoreOptions():
    source_file: pathlib.Path
    output_file: pathlib.Path
    annotate: bool = False
    do_macros: bool = True
    do_toon: bool = True
    reverse_toon: bool = False
    environment: dict[str, str] = field(default_factory=dict)
    max_macro_depth: int = MAX_MACRO_DEPTH

@dataclass
class FXCoreResult():
    lines: list[str]
    errors: list[FXCoreSyntaxError]
    session: FXCoreSession
    macros_ok: bool = True

    @property
    def n_output_lines(self) -> int:
        # Structured IF lowering produces lines with embedded line breaks.
        return sum(line.count("\n") + 1 for line in self.lines)

# region source reading

def evaluate_condition(environment: dict[str, str], text: str, source: SourceLine | None = None) -> bool:
    """Evaluate '$if(name=value)' or '$if(name!=value)', names and values are case-insensitive."""
    i_close = text.find(")")
    if i_close < 0:
        raise FXCoreSyntaxError("Missing closing paren of $if statement.", source)

    expression = text[len(IF_DIRECTIVE):i_close].strip()
    parts = expression.split("=")
    if len(parts) != 2:
        raise FXCoreSyntaxError(f"Invalid $if expression '{expression}', expected 'name=value' or 'name!=value'.", source)

    # The '!' of '!=' stays with the name.
    name = parts[0].strip()
    negate = name.endswith("!")
    if negate:
        name = name[:-1].strip()

    matches = environment.get(name.lower(), "").lower() == parts[1].strip().lower()
    return matches != negate

def set_environment(environment: dict[str, str], text: str, source: SourceLine | None = None):
    # '$set name=value'
    parts = text[len(SET_DIRECTIVE):].strip().split("=")
    if len(parts) != 2 or parts[0].strip() == "":
        raise FXCoreSyntaxError(f"Invalid $set statement '{text}', expected '$set name=value'.", source)
    environment[parts[0].strip().lower()] = parts[1].strip()

def _include(session: FXCoreSession, text: str, source_directory: pathlib.Path, source: SourceLine) -> list[Statement]:
    name = text[len(INCLUDE_DIRECTIVE):].replace("\"", "").strip()
    if name == "":
        raise FXCoreSyntaxError("Invalid $include statement, no file specified.", source)

    # Only include a file once.
    if name in session.included_files:
        logger.debug(f"Skipping unit '{name}', it is already included")
        return []
    session.included_files.append(name)

    include_path = source_directory / name
    if not include_path.is_file():
        raise FXCoreSyntaxError(f"Failed to resolve included unit '{name}' ({include_path}).", source)
    logger.debug(f"Including unit '{include_path}'")
    return read_source(session, include_path, source_directory, source)

def read_source(
    session: FXCoreSession,
    file_path: pathlib.Path,
    source_directory: pathlib.Path | None = None,
    include_source: SourceLine | None = None,
) -> list[Statement]:
    """
    Pass 1: read a source file with all includes embedded. Macro definitions are collected into the session and
    removed, as are '$if' sections whose condition is false and the '$set' statements. Included files are
    resolved relative to the directory of the root file.
    """
    if source_directory is None:
        source_directory = file_path.parent

    try:
        with open(file_path, "r") as source_file:
            src_lines = source_file.read().splitlines()
    except OSError as exception:
        raise FXCoreSyntaxError(f"Failed to read unit '{file_path}': {exception.strerror}.", include_source) from exception

    # Blank last line, terminates anything still open at the end of the file.
    src_lines.append("")

    unit = file_path.name
    statements: list[Statement] = []
    definition: list[Statement] | None = None
    in_if = False
    if_condition = False
    in_block_comment = False
    for (i_line, line) in enumerate(src_lines):
        source = SourceLine(unit, i_line, line)
        statement = Statement.parse(line, source)

        # Multi-line block comments are copied through without any processing.
        if in_block_comment:
            if not statement.block_comment_end:
                statements.append(Statement.raw(line, source))
                continue

            # Comment ends on this line, the code following it is processed normally.
            in_block_comment = False
            i_end = line.find("*/") + 2
            statements.append(Statement.raw(line[:i_end], source))
            line = line[i_end:]
            if line.strip() == "":
                continue
            statement = Statement.parse(line, source)

        # Comment starting on this line is emitted after the code in front of it.
        comment_start: Statement | None = None
        if statement.block_comment_start:
            in_block_comment = True
            i_start = line.find("/*")
            comment_start = Statement.raw(line[i_start:], source)
            if line[:i_start].strip() == "":
                statements.append(comment_start)
                continue
            statement = Statement.parse(line[:i_start], source)

        text = statement.text.replace("\t", " ").strip()

        # End of a multi-line macro definition.
        if definition is not None and is_directive(text, END_MACRO_DIRECTIVE):
            session.macros.define(Macro.parse(definition))
            definition = None

        # Lines of a multi-line macro definition.
        elif definition is not None:
            definition.append(statement)

        # Conditional sections.
        elif is_directive(text, END_IF_DIRECTIVE):
            in_if = False

        elif in_if and not if_condition:
            pass

        elif text.lower().startswith(IF_DIRECTIVE):
            if in_if:
                raise FXCoreSyntaxError("Nested $if statements are not supported.", source)
            if_condition = evaluate_condition(session.environment, text, source)
            in_if = True
            logger.debug(f"Conditional section '{text}' is {if_condition}")

        elif is_directive(text, INCLUDE_DIRECTIVE):
            statements += _include(session, text, source_directory, source)

        # Macro definitions, single line or starting a multi-line definition.
        elif is_directive(text, MACRO_DIRECTIVE):
            if text.endswith(MULTILINE_MARKER):
                definition = [statement]
            else:
                session.macros.define(Macro.parse([statement]))

        elif is_directive(text, SET_DIRECTIVE):
            set_environment(session.environment, text, source)

        else:
            statements.append(statement)

        if comment_start is not None:
            statements.append(comment_start)

    if definition is not None:
        raise FXCoreSyntaxError(f"Unterminated macro definition, missing {END_MACRO_DIRECTIVE}.", definition[0].source)
    if in_if:
        logger.warning(f"Unit '{unit}' ends inside a $if section, missing {END_IF_DIRECTIVE}")

    return statements

# endregion source reading

# region pipeline

def process(options: FXCoreOptions) -> FXCoreResult:
    """
    Run the passes selected by `options` on the source file: source reading and macro expansion, then TOON
    translation. Macro processing stops at its first error and TOON translation is skipped, TOON errors are
    collected per line and translation continues with the next line.
    """
    session = FXCoreSession(
        environment={ name.lower(): value for (name, value) in options.environment.items() },
        source_name=options.source_file.name,
        output_name=options.output_file.name,
        max_macro_depth=options.max_macro_depth,
    )
    result = FXCoreResult([], [], session)

    # Macro processing.
    if options.do_macros:
        try:
            statements = read_source(session, options.source_file)
            expanded = MacroExpander(session).expand(statements)
        except FXCoreSyntaxError as error:
            result.errors.append(error)
            result.macros_ok = False
            return result
    else:
        with open(options.source_file, "r") as source_file:
            expanded = [ (line, SourceLine(session.source_name, i_line, line)) for (i_line, line) in enumerate(source_file.read().splitlines()) ]
    result.lines = [ line for (line, _) in expanded ]

    # TOON processing.
    if options.do_toon:
        translator = ToonTranslator(session, options.annotate)
        translate = translator.asm_to_toon if options.reverse_toon else translator.toon_to_asm
        toon_lines: list[str] = []
        for (line, source) in expanded:
            # Errors refer to the source line the expanded line originates from.
            outcome = attempt(translate, line, source)
            if outcome.ok:
                toon_lines.append(outcome.value)
            else:
                # Keep the line untranslated and continue with the next one.
                result.errors.append(outcome.error)
                toon_lines.append(line)
        result.lines = toon_lines

        if not options.reverse_toon:
            outcome = attempt(translator.finish)
            if not outcome.ok:
                result.errors.append(outcome.error)

    return result

def write_output(file_path: pathlib.Path, lines: list[str]):
    with open(file_path, "w") as output_file:
        for line in lines:
            output_file.write(f"{line}\n")

# endregion pipeline

# region application

class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_INVALID_ARGUMENTS, f"{self.prog}: error: {message}\n")

def parse_environment(definitions: list[str]) -> dict[str, str]:
    # '-Ename=true' or '-E name=false'
    environment: dict[str, str] = {}
    for definition in definitions:
        if definition.strip() == "":
            continue
        parts = definition.split("=")
        if len(parts) != 2:
            raise ValueError(f"Invalid -E argument '{definition}', expecting '-Ename=true|false'.")
        if parts[1] not in ("true", "false"):
            raise ValueError(f"Invalid -E argument '{definition}', value must be true or false.")
        environment[parts[0].lower()] = parts[1]
    return environment

def main(argv: list[str] | None = None) -> int:
    # Parse arguments
    argument_parser = _ArgumentParser(
        prog="FXCoreMP",
        description="Macro processor and TOON translator for the FXCore DSP assembler",
    )
    argument_parser.add_argument("input")
    argument_parser.add_argument("output")
    argument_parser.add_argument("--annotate", action="store_true", help="append the original TOON text to translated lines")
    argument_parser.add_argument("--notoon", action="store_true", help="skip TOON translation")
    argument_parser.add_argument("--nomacro", action="store_true", help="skip macro processing")
    argument_parser.add_argument("--reversetoon", action="store_true", help="translate assembler to TOON (requires --nomacro)")
    argument_parser.add_argument("-E", dest="environment", action="append", default=[], metavar="NAME=true|false", help="environment value for $if sections")
    argument_parser.add_argument("--debug", nargs="?", const="debug", choices=["info", "debug"], help="output verbosity, write as --debug=LEVEL")
    argument_parser.add_argument("--max-macro-depth", type=int, default=MAX_MACRO_DEPTH)
    arguments = argument_parser.parse_args(argv)

    # Configure logging.
    match arguments.debug:
        case "debug":
            log_level = logging.DEBUG
        case "info":
            log_level = logging.INFO
        case _:
            log_level = logging.WARNING
    logging.basicConfig(format="%(levelname)s: %(message)s", level=log_level)

    try:
        environment = parse_environment(arguments.environment)
    except ValueError as exception:
        print(exception, file=sys.stderr)
        return EXIT_INVALID_ARGUMENTS

    options = FXCoreOptions(
        pathlib.Path(arguments.input),
        pathlib.Path(arguments.output),
        annotate=arguments.annotate,
        do_macros=not arguments.nomacro,
        do_toon=not arguments.notoon,
        reverse_toon=arguments.reversetoon,
        environment=environment,
        max_macro_depth=arguments.max_macro_depth,
    )

    # Macros produce assembler, never TOON.
    if options.do_macros and options.do_toon and options.reverse_toon:
        print("Cannot run macros and reverse TOON.", file=sys.stderr)
        return EXIT_INVALID_ARGUMENTS

    if not options.source_file.is_file():
        print(f"Input file '{options.source_file.absolute()}' not found.", file=sys.stderr)
        return EXIT_INVALID_ARGUMENTS

    try:
        result = process(options)

        # Report errors.
        for error in result.errors:
            if result.macros_ok:
                print(f"TOON error: {error}", file=sys.stderr)
            else:
                print(f"Macro processing error:\n  {error}", file=sys.stderr)

        # Write the output to a file.
        if result.macros_ok:
            write_output(options.output_file, result.lines)
    except Exception:
        print("Unexpected program error:", file=sys.stderr)
        traceback.print_exc()
        return EXIT_UNEXPECTED_ERROR

    # Summary output.
    if log_level <= logging.INFO:
        mode = "[TOON-->ASM]" if not options.reverse_toon else "[ASM-->TOON]"
        print(f"FXCoreMP processing completed ({'macros' if options.do_macros else 'no macros'}, {'toon' if options.do_toon else 'no toon'} {mode})")
        print(f"  Errors:             {len(result.errors)}")
        print(f"  Included files:     {len(result.session.included_files)}")
        print(f"  Macro definitions:  {len(result.session.macros)}")
        print(f"  Output lines:       {result.n_output_lines} ({options.output_file.absolute()})")

    if len(result.errors) > 0:
        return EXIT_SYNTAX_ERRORS
    return EXIT_OK

if __name__ == "__main__":
    sys.exit(main())

# endregion application
