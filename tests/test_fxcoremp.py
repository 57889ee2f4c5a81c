import pathlib

import pytest

from fxcoremp import (
    EXIT_INVALID_ARGUMENTS, EXIT_OK, EXIT_SYNTAX_ERRORS,
    FXCoreOptions, FXCoreSession, evaluate_condition, main, parse_environment, process, read_source, set_environment,
)
from fxsource import FXCoreSyntaxError

def _write(path: pathlib.Path, *lines: str) -> pathlib.Path:
    path.write_text("\n".join(lines) + "\n")
    return path

# region source reading

@pytest.mark.parametrize("text, expected", [
    ("$if(debug=true)", True),
    ("$if(DEBUG=TRUE)", True),
    ("$if(debug!=true)", False),
    ("$if(debug = false)", False),
    ("$if(missing=)", True),
    ("$if(missing!=true)", True),
])
def test_evaluate_condition(text: str, expected: bool):
    assert evaluate_condition({"debug": "true"}, text) == expected

@pytest.mark.parametrize("text", ["$if(debug=true", "$if(debug)", "$if(a=b=c)"])
def test_invalid_condition(text: str):
    with pytest.raises(FXCoreSyntaxError):
        evaluate_condition({}, text)

def test_set_environment():
    environment: dict[str, str] = {}
    set_environment(environment, "$set Mode = Fast")
    assert environment == {"mode": "Fast"}
    with pytest.raises(FXCoreSyntaxError):
        set_environment(environment, "$set mode")

def test_read_source(tmp_path: pathlib.Path):
    _write(tmp_path / "lib.fxc",
        "$macro SQUARE(x) acc32 = ${x} multrr ${x}",
        "$macro TWO(r) ++",
        "abs ${r}",
        "neg ${r}",
        "$endmacro",
    )
    source_file = _write(tmp_path / "main.fxc",
        "$include \"lib.fxc\"",
        "$include lib.fxc",
        "$set mode=fast",
        "$if(mode=fast)",
        "abs r0",
        "$endif",
        "$if(mode!=fast)",
        "neg r0",
        "$endif",
        "start: $SQUARE(r1) ; square",
        "/* block",
        "$SQUARE(r2)",
        "*/ cpy_cc r0,r1",
    )

    session = FXCoreSession()
    statements = read_source(session, source_file)

    assert session.included_files == ["lib.fxc"]
    assert len(session.macros) == 2
    assert session.environment == {"mode": "fast"}
    assert [statement.full_text for statement in statements] == [
        "",
        "abs r0",
        "start: $SQUARE(r1) ; square",
        "/* block",
        "$SQUARE(r2)",
        "*/",
        " cpy_cc r0,r1",
        "",
    ]
    assert [statement.ignore for statement in statements] == [False, False, False, True, True, True, False, False]
    assert statements[2].source.unit == "main.fxc"
    assert statements[2].source.line == 9

def test_code_before_block_comment(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "abs r0 /* starts", "inside", "*/")
    statements = read_source(FXCoreSession(), source_file)
    assert [statement.full_text for statement in statements] == ["abs r0 ", "/* starts", "inside", "*/", ""]

def test_nested_if_sections(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "$set a=1", "$if(a=1)", "$if(b=1)", "$endif", "$endif")
    with pytest.raises(FXCoreSyntaxError, match="Nested"):
        read_source(FXCoreSession(), source_file)

def test_unterminated_macro(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "abs r0", "$macro OPEN ++", "abs r1")
    with pytest.raises(FXCoreSyntaxError, match="missing \\$endmacro") as error:
        read_source(FXCoreSession(), source_file)
    assert error.value.source_line.line == 1

def test_missing_include(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "$include nothere.fxc")
    with pytest.raises(FXCoreSyntaxError, match="nothere.fxc") as error:
        read_source(FXCoreSession(), source_file)
    assert error.value.source_line.unit == "main.fxc"

def test_includes_are_relative_to_root_file(tmp_path: pathlib.Path):
    (tmp_path / "lib").mkdir()
    _write(tmp_path / "lib" / "outer.fxc", "$include lib/inner.fxc", "abs r1")
    _write(tmp_path / "lib" / "inner.fxc", "abs r2")
    source_file = _write(tmp_path / "main.fxc", "$include lib/outer.fxc")
    statements = read_source(FXCoreSession(), source_file)
    assert [statement.text for statement in statements if statement.text != ""] == ["abs r2", "abs r1"]

# endregion source reading

# region pipeline

def test_process(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc",
        "$macro CLEAR(r) ${r} = 0",
        ".equ TAPS 4",
        "$CLEAR(acc32)",
        "r1.u = $_eval(TAPS * 2)",
        "IF r0 >=0",
        "acc32 = r0 add r1",
        "ENDIF",
    )
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm"))
    assert result.errors == []
    assert result.lines == [
        ".equ TAPS 4",
        "xor\t\tacc32,acc32",
        "wrdld\t\tr1,8",
        "jneg\t\tr0,_else_1",
        "add\t\tr0,r1",
        "_else_1:\n_endif_1:",
        "",
    ]
    assert result.n_output_lines == 8

def test_process_collects_toon_errors(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "acc32 = r0 sub 5", "acc32 = r0 add r1", "IF r0 >=0")
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm"))
    assert result.macros_ok
    assert len(result.errors) == 2
    assert result.errors[0].source_line.unit == "main.fxc"
    assert result.errors[0].source_line.line == 0
    assert "missing ENDIF" in result.errors[1].message
    assert result.lines[0] == "acc32 = r0 sub 5"
    assert result.lines[1] == "add\t\tr0,r1"

def test_errors_refer_to_source_lines(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc",
        "$macro A abs r0",
        "$macro B abs r1",
        "$macro C abs r2",
        "abs r1",
        "IF r0 >=0",
    )
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm"))
    assert len(result.errors) == 1
    assert "missing ENDIF" in result.errors[0].message
    assert result.errors[0].source_line.unit == "main.fxc"
    assert result.errors[0].source_line.line == 4

def test_errors_in_expanded_lines_refer_to_invocation(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc",
        "$macro T ++",
        "abs r0",
        "acc32 = r0 sub 5",
        "$endmacro",
        "$T",
        "abs r1",
        "acc32 = r1 sub 5",
    )
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm"))
    assert [(error.source_line.unit, error.source_line.line) for error in result.errors] == [("main.fxc", 4), ("main.fxc", 6)]

def test_errors_in_included_file(tmp_path: pathlib.Path):
    _write(tmp_path / "lib.fxc", "abs r0", "acc32 = r0 sub 5")
    source_file = _write(tmp_path / "main.fxc", "$include lib.fxc", "abs r1")
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm"))
    assert len(result.errors) == 1
    assert result.errors[0].source_line.unit == "lib.fxc"
    assert result.errors[0].source_line.line == 1

def test_process_stops_at_macro_error(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "$MISSING", "acc32 = r0 sub 5")
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm"))
    assert not result.macros_ok
    assert len(result.errors) == 1
    assert result.lines == []

def test_process_without_macros(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.asm", "$NOT_EXPANDED", "addi r0,5")
    options = FXCoreOptions(source_file, tmp_path / "main.toon", do_macros=False, reverse_toon=True)
    result = process(options)
    assert result.lines == ["$NOT_EXPANDED", "ACC32\t\t= r0 add 5"]

def test_process_environment(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "$if(Stereo=true)", "abs r1", "$endif")
    result = process(FXCoreOptions(source_file, tmp_path / "main.asm", environment={"STEREO": "true"}))
    assert "abs r1" in result.lines

# endregion pipeline

# region command line

def test_parse_environment():
    assert parse_environment(["Debug=true", "", "mono=false"]) == {"debug": "true", "mono": "false"}
    with pytest.raises(ValueError):
        parse_environment(["debug=yes"])
    with pytest.raises(ValueError):
        parse_environment(["debug"])

def test_main(tmp_path: pathlib.Path, capsys):
    _write(tmp_path / "lib.fxc", "$macro SQUARE(x) acc32 = ${x} multrr ${x}")
    source_file = _write(tmp_path / "main.fxc",
        "$include lib.fxc",
        "$if(fast=true)",
        "$SQUARE(r1) ; square",
        "$endif",
    )
    output_file = tmp_path / "main.asm"

    assert main([str(source_file), str(output_file), "-Efast=true", "--annotate", "--debug=info"]) == EXIT_OK
    lines = output_file.read_text().splitlines()
    assert "multrr\t\tr1,r1\t\t\t/* acc32 = r1 multrr r1 */\t\t\t; square" in lines

    output = capsys.readouterr().out
    assert "Macro definitions:  1" in output
    assert "Included files:     1" in output

def test_main_false_section(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.fxc", "$if(fast=true)", "abs r0", "$endif", "neg r0")
    output_file = tmp_path / "main.asm"
    assert main([str(source_file), str(output_file)]) == EXIT_OK
    assert output_file.read_text().splitlines() == ["neg r0", ""]

def test_main_syntax_errors(tmp_path: pathlib.Path, capsys):
    source_file = _write(tmp_path / "main.fxc", "acc32 = r0 sub 5")
    output_file = tmp_path / "main.asm"
    assert main([str(source_file), str(output_file)]) == EXIT_SYNTAX_ERRORS
    assert output_file.read_text().splitlines()[0] == "acc32 = r0 sub 5"
    assert "TOON error" in capsys.readouterr().err

def test_main_macro_error_writes_nothing(tmp_path: pathlib.Path, capsys):
    source_file = _write(tmp_path / "main.fxc", "$MISSING")
    output_file = tmp_path / "main.asm"
    assert main([str(source_file), str(output_file)]) == EXIT_SYNTAX_ERRORS
    assert not output_file.exists()
    assert "Macro processing error" in capsys.readouterr().err

@pytest.mark.parametrize("arguments", [
    ["--reversetoon"],
    ["-Edebug=maybe"],
])
def test_main_invalid_arguments(tmp_path: pathlib.Path, arguments: list[str]):
    source_file = _write(tmp_path / "main.fxc", "abs r0")
    assert main([str(source_file), str(tmp_path / "main.asm"), *arguments]) == EXIT_INVALID_ARGUMENTS

@pytest.mark.parametrize("arguments", [
    ["--max-macro-depth", "many"],
    ["--debug=verbose"],
    ["--unknown"],
])
def test_main_argument_parser_errors(tmp_path: pathlib.Path, arguments: list[str]):
    with pytest.raises(SystemExit) as exit_info:
        main(["main.fxc", "main.asm", *arguments])
    assert exit_info.value.code == EXIT_INVALID_ARGUMENTS

def test_main_missing_input(tmp_path: pathlib.Path):
    assert main([str(tmp_path / "none.fxc"), str(tmp_path / "main.asm")]) == EXIT_INVALID_ARGUMENTS

def test_main_reverse_toon(tmp_path: pathlib.Path):
    source_file = _write(tmp_path / "main.asm", "jgez r0,done")
    output_file = tmp_path / "main.toon"
    assert main([str(source_file), str(output_file), "--nomacro", "--reversetoon"]) == EXIT_OK
    assert output_file.read_text().splitlines() == ["IF r0 >=0 GOTO done"]

# endregion command line
