import pytest

from fxcore import Direction
from fxmacro import MacroArgument, MacroParameter, split_arguments, substitute_arguments
from fxsource import FXCoreSyntaxError, SourceLine, Statement

# region definitions

@pytest.mark.parametrize("text, name, direction", [
    ("value", "value", Direction.ANY),
    ("value<=", "value", Direction.IN),
    ("value=>", "value", Direction.OUT),
    ("value<=>", "value", Direction.INOUT),
    ("<=> value", "value", Direction.INOUT),
    (" =>result ", "result", Direction.OUT),
])
def test_parameter(text: str, name: str, direction: Direction):
    assert MacroParameter.parse(text) == MacroParameter(name, direction)

@pytest.mark.parametrize("text", ["", "two words", "bad-name", "<="])
def test_invalid_parameter(text: str):
    with pytest.raises(FXCoreSyntaxError):
        MacroParameter.parse(text)

@pytest.mark.parametrize("text, name, value, direction", [
    ("a=r0", "a", "r0", Direction.ANY),
    ("a <= r0", "a", "r0", Direction.IN),
    ("a=>r0", "a", "r0", Direction.OUT),
    ("a<=>r0", "a", "r0", Direction.INOUT),
])
def test_named_argument(text: str, name: str, value: str, direction: Direction):
    assert MacroArgument.parse_named(text) == (name, MacroArgument(value, direction))

def test_invalid_named_argument():
    with pytest.raises(FXCoreSyntaxError):
        MacroArgument.parse_named("=r0")
    with pytest.raises(FXCoreSyntaxError):
        MacroArgument.parse_named("a=")

def test_single_line_definition(define):
    macro = define("$macro SQUARE(x) acc32 = ${x} multrr ${x}")
    assert macro.name == "SQUARE"
    assert macro.parameters == (MacroParameter("x"),)
    assert [line.text for line in macro.lines] == ["acc32 = ${x} multrr ${x}"]
    assert macro.source_file == "lib.fxc"

def test_multi_line_definition(define):
    macro = define("$macro MOVE(src<=, dst=>) ++", "cpy_cc ${dst},${src}", "abs ${dst}")
    assert macro.parameters == (MacroParameter("src", Direction.IN), MacroParameter("dst", Direction.OUT))
    assert len(macro.lines) == 2

def test_definition_without_parameters(define):
    macro = define("$macro ZERO xor acc32,acc32")
    assert macro.parameters == ()
    assert macro.lines[0].text == "xor acc32,acc32"

@pytest.mark.parametrize("header", [
    "$macro",
    "$macro _RESERVED abs r0",
    "$macro BAD-NAME abs r0",
    "$macro TWICE(a, A) abs r0",
    "$macro OPEN(a abs r0",
])
def test_invalid_definition(define, header: str):
    with pytest.raises(FXCoreSyntaxError):
        define(header)

def test_nested_definition(define):
    with pytest.raises(FXCoreSyntaxError, match="Nested macro definition"):
        define("$macro OUTER ++", "$macro INNER abs r0")

def test_include_in_definition(define):
    with pytest.raises(FXCoreSyntaxError, match="Include not allowed"):
        define("$macro OUTER ++", "$include other.fxc")

def test_duplicate_definition(define, session):
    define("$macro ZERO xor acc32,acc32")
    with pytest.raises(FXCoreSyntaxError, match="already defined in line 1 of unit 'lib.fxc'"):
        define("$macro zero xor acc32,acc32")
    assert len(session.macros) == 1
    assert "Zero" in session.macros

# endregion definitions

# region expansion

def test_plain_line_is_unchanged(expand):
    assert expand("  abs r0  ; comment") == ["  abs r0  ; comment"]

def test_no_argument_macro_keeps_comment(define, expand):
    define("$macro ZERO xor acc32,acc32")
    assert expand("$ZERO ; clear") == ["xor acc32,acc32 ; clear"]
    assert expand("$ZERO() ; clear") == ["xor acc32,acc32 ; clear"]

def test_invocation_inside_text(define, expand):
    define("$macro CHANNEL 3")
    assert expand("cpy_cs r0,in$CHANNEL()") == ["cpy_cs r0,in3"]
    assert expand("cpy_cs r0,pot$CHANNEL()_k") == ["cpy_cs r0,pot3_k"]

def test_label_is_kept(define, expand):
    define("$macro ZERO xor acc32,acc32")
    assert expand("start: $ZERO") == ["start: xor acc32,acc32"]

def test_positional_arguments(define, expand):
    define("$macro ADD(a, b) ${a} + ${b}")
    assert expand("$ADD(1,2)") == ["1 + 2"]

def test_named_arguments(define, expand):
    define("$macro ADD(a, b) ${a} + ${b}")
    assert expand("$ADD(b=2, a=1)") == ["1 + 2"]
    assert expand("$add(B=2, A=1)") == ["1 + 2"]

@pytest.mark.parametrize("invocation", ["$ADD(1)", "$ADD(1,2,3)", "$ADD", "$ADD()"])
def test_argument_count_mismatch(define, expand, invocation: str):
    define("$macro ADD(a, b) ${a} + ${b}")
    with pytest.raises(FXCoreSyntaxError, match="Number of arguments"):
        expand(invocation)

@pytest.mark.parametrize("invocation, message", [
    ("$ADD(1, b=2)", "mix"),
    ("$ADD(a=1, 2)", "mix"),
    ("$ADD(a=1, a=2)", "more than once"),
    ("$ADD(a=1, c=2)", "no parameter named 'c'"),
])
def test_invalid_named_arguments(define, expand, invocation: str, message: str):
    define("$macro ADD(a, b) ${a} + ${b}")
    with pytest.raises(FXCoreSyntaxError, match=message):
        expand(invocation)

def test_argument_directions(define, expand):
    define("$macro MOVE(src<=, dst=>) cpy_cc ${dst},${src}")
    assert expand("$MOVE(src<=r1, dst=>r2)") == ["cpy_cc r2,r1"]
    assert expand("$MOVE(dst=r2, src=r1)") == ["cpy_cc r2,r1"]
    assert expand("$MOVE(r1, r2)") == ["cpy_cc r2,r1"]
    with pytest.raises(FXCoreSyntaxError, match="direction mismatch"):
        expand("$MOVE(src=>r1, dst=>r2)")
    with pytest.raises(FXCoreSyntaxError, match="direction mismatch"):
        expand("$MOVE(src<=r1, dst<=>r2)")

def test_nested_invocations(define, expand):
    define("$macro INNER(v) [${v}]")
    define("$macro OUTER(w) <${w}>")
    assert expand("$OUTER($INNER(x))") == ["<[x]>"]

def test_parenthesized_argument(define, expand):
    define("$macro F(a, b) ${a} ${b}")
    assert expand("$F(1, (2+3)) tail") == ["1 (2+3) tail"]

def test_several_invocations_on_one_line(define, expand):
    define("$macro A first")
    define("$macro B second")
    assert expand("$A $B $A") == ["first second first"]

def test_macro_body_invokes_macro(define, expand):
    define("$macro REG r5")
    define("$macro CLEAR(x) xor ${x},$REG")
    assert expand("$CLEAR(r1)") == ["xor r1,r5"]

def test_multi_line_expansion(define, expand):
    define("$macro TWO(r) ++", "abs ${r}", "neg ${r}   ; negate")
    assert expand("here: $TWO(r1) ; both") == [
        "; ---- begin macro TWO",
        "abs r1",
        "neg r1   ; negate",
        "; ---- end macro TWO",
    ]

def test_unique_argument(define, expand):
    define("$macro SKIP ++", "jmp skip_${:unique}", "skip_${:unique}:")
    assert expand("$SKIP")[1:3] == ["jmp skip_1", "skip_1:"]
    assert expand("$SKIP")[1:3] == ["jmp skip_2", "skip_2:"]

def test_file_arguments(define, expand):
    define("$macro WHERE ${:sourcefile} ${:sourcefile_root} ${:outputfile}")
    assert expand("$WHERE") == ["lib.fxc main.fxc main.asm"]

def test_unresolved_argument(define, expand):
    define("$macro BAD(a) abs ${b}")
    with pytest.raises(FXCoreSyntaxError, match="Unresolved macro argument"):
        expand("$BAD(r0)")

def test_argument_reference_in_body_comment_is_substituted(define, expand):
    define("$macro NOTE ++", "abs r0 ; uses ${x}")
    with pytest.raises(FXCoreSyntaxError, match="Unresolved macro argument"):
        expand("$NOTE")

def test_unknown_macro(expand):
    with pytest.raises(FXCoreSyntaxError, match="No definition found for macro 'MISSING'"):
        expand("$MISSING(1)")

def test_unbalanced_arguments(define, expand):
    define("$macro ADD(a, b) ${a} + ${b}")
    with pytest.raises(FXCoreSyntaxError, match="unbalanced"):
        expand("$ADD(1, (2)")

def test_missing_name(expand):
    with pytest.raises(FXCoreSyntaxError, match="Missing or invalid macro name"):
        expand("cost $ 5")

def test_recursion_depth_limit(define, expand):
    define("$macro LOOP abs r0 $LOOP")
    with pytest.raises(FXCoreSyntaxError, match="maximum nesting depth of 64"):
        expand("$LOOP")

def test_configured_depth_limit(define, expand, session):
    session.max_macro_depth = 2
    define("$macro L1 $L2")
    define("$macro L2 $L3")
    define("$macro L3 abs r0")
    with pytest.raises(FXCoreSyntaxError, match="macro 'L3'"):
        expand("$L1")

def test_count_builtin(expand):
    assert expand("$_count(n, get)") == ["0"]
    assert expand("$_count(n, set, 5)") == [""]
    assert expand("$_count(n, add, 5)") == ["5"]
    assert expand("$_count(n, get)") == ["10"]

def test_count_builtin_with_quoted_arguments(expand):
    assert expand('$_count("c", "add", "5")') == ["0"]
    assert expand('$_count("c", "add", "5")') == ["5"]
    assert expand('$_count("c","get","")') == ["10"]

def test_expanded_lines_keep_their_source(define, expander):
    define("$macro TWO(r) ++", "abs ${r}", "neg ${r}")
    first = SourceLine("main.fxc", 3, "abs r0")
    second = SourceLine("main.fxc", 4, "$TWO(r1)")
    expanded = expander.expand([Statement.parse(first.text, first), Statement.parse(second.text, second)])
    assert [text for (text, _) in expanded] == ["abs r0", "; ---- begin macro TWO", "abs r1", "neg r1", "; ---- end macro TWO"]
    assert [source.line for (_, source) in expanded] == [3, 4, 4, 4, 4]

def test_equ_and_eval(expand, session):
    assert expand(".equ V 12") == [".equ V 12"]
    assert session.symbols["V"] == 12
    assert expand("$_eval(V-1)") == ["11"]
    assert expand(".EQU w $_eval(v*2) ; twice") == [".EQU w 24 ; twice"]
    assert session.symbols["W"] == 24

def test_equ_keeps_text_that_is_not_a_number(expand, session):
    expand(".equ BASE MEM_START + 4")
    assert session.symbols["BASE"] == "MEM_START + 4"
    with pytest.raises(FXCoreSyntaxError, match="_eval"):
        expand("$_eval(BASE * 2)")

def test_builtin_in_label_position(expand):
    assert expand("$_count(n,get): abs r0") == ["0: abs r0"]

def test_expand_passes_ignored_statements(expander):
    source = SourceLine("main.fxc", 0, "inside $NOT_A_MACRO")
    assert expander.expand([Statement.raw(source.text, source)]) == [("inside $NOT_A_MACRO", source)]

def test_split_arguments():
    assert split_arguments(None) == []
    assert split_arguments("  ") == []
    assert split_arguments("a, (b, c)") == ["a", " (b", " c)"]

def test_substitution_is_single_pass():
    assert substitute_arguments("${a}-${b}", {"a": "${b}", "b": "x"}) == "${b}-x"

# endregion expansion
