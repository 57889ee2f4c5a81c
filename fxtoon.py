from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING
import logging
import re

from fxbuiltins import parse_number
from fxcore import (
    ELSE_LABEL_PREFIX, ENDIF_LABEL_PREFIX,
    AddressingMode, Condition, InstructionFamily, Modifier, RegisterClass,
    addressing_decorations, binary_acc32_operations, binary_acc64_operations, branch_instructions, copy_instructions,
    comparison_operands, comparison_operators, condition_expressions, condition_spelling,
    delay_memory_operations, generic_forms, immediate_forms, immediate_only_operations,
    instruction_family, inverse_condition, modifier_suffixes, register_class, register_forms,
    register_only_operations, unary_acc32_operations,
)
from fxsource import FXCoreSyntaxError, SourceLine, Statement

if TYPE_CHECKING:
    from fxcoremp import FXCoreSession

logger = logging.getLogger(__name__)

SEP1 = "\t\t"   # Between instruction and first operand.
SEP2 = "\t\t\t" # Between statement text and comment.
SEP3 = "\t\t"   # Before '=' in generated TOON statements.

_assignment_pattern = re.compile(r"^(\S+?)\s*(\+?=)\s*(.*)$")

# region operands

class RenameTable():
    """Symbolic register names declared with '.rn name register'."""

    def __init__(self):
        self._names: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._names

    def rename(self, name: str, register: str):
        self._names[name.upper()] = register.upper()

    def resolve(self, name: str) -> str:
        name = name.upper()
        return self._names.get(name, name)

@dataclass(frozen=True)
class Operand():
    """
    One TOON operand. `name` is the operand text without addressing decorations or modifier suffix,
    `resolved_name` is the upper case register name after applying the rename table.
    """
    text: str
    name: str
    resolved_name: str
    mode: AddressingMode
    modifier: Modifier
    register_class: RegisterClass

    @classmethod
    def parse(cls, text: str, renames: RenameTable) -> Operand:
        name = text
        upper_text = text.upper()
        mode = AddressingMode.PLAIN
        modifier = Modifier.NONE

        # Indirection '(x)', '#(x)', '[x]', otherwise a '.U', '.L' or '.SAT' modifier.
        for (prefix, suffix, decoration_mode) in addressing_decorations:
            if upper_text.startswith(prefix) and upper_text.endswith(suffix) and len(text) >= len(prefix) + len(suffix):
                name = text[len(prefix):-len(suffix)]
                mode = decoration_mode
                break
        else:
            for (suffix, suffix_modifier) in modifier_suffixes.items():
                if upper_text.endswith(suffix):
                    name = text[:-len(suffix)]
                    modifier = suffix_modifier
                    break

        resolved_name = renames.resolve(name)
        return cls(text, name, resolved_name, mode, modifier, register_class(resolved_name))

    @property
    def is_core(self) -> bool:
        return self.register_class == RegisterClass.CORE

    @property
    def is_memory(self) -> bool:
        return self.register_class == RegisterClass.MEMORY

    @property
    def is_special(self) -> bool:
        return self.register_class == RegisterClass.SPECIAL

    @property
    def is_register(self) -> bool:
        # CR, MR or SFR, never ACC64.
        return self.register_class in (RegisterClass.CORE, RegisterClass.MEMORY, RegisterClass.SPECIAL)

    @property
    def is_acc32(self) -> bool:
        return self.resolved_name == "ACC32"

    @property
    def is_acc64(self) -> bool:
        return self.register_class == RegisterClass.ACC64

    @property
    def is_indirect(self) -> bool:
        return self.mode != AddressingMode.PLAIN

    @property
    def is_modified(self) -> bool:
        return self.modifier != Modifier.NONE

    @property
    def is_plain(self) -> bool:
        return not self.is_indirect and not self.is_modified

    @property
    def class_code(self) -> str:
        # Register class letter used by the cpy_xx mnemonics.
        match self.register_class:
            case RegisterClass.CORE:
                return "c"
            case RegisterClass.MEMORY:
                return "m"
            case RegisterClass.SPECIAL:
                return "s"
            case _:
                raise ValueError(f"Operand '{self.text}' is not a register.")

def is_zero(text: str) -> bool:
    try:
        return parse_number(text) == 0
    except ValueError:
        return False

# endregion operands

@dataclass
class IfFrame():
    statement: Statement
    condition: Condition
    else_label: str
    end_label: str
    else_emitted: bool = False

class ToonTranslator():
    """
    Translates TOON (Target Of Operation Notation) statements into FXCore assembler and back.

    One translator handles one whole source file, every line must be passed through it in order so it can track
    '.rn' renames (needed to classify operands) and open structured IF blocks. Both live in the session.
    Lines that are not TOON are returned unchanged.
    """

    def __init__(self, session: FXCoreSession, annotate: bool = True):
        self.session = session
        self.annotate = annotate
        self.in_block_comment = False
        self._source: SourceLine | None = None

    @property
    def renames(self) -> RenameTable:
        return self.session.renames

    @property
    def if_stack(self) -> list[IfFrame]:
        return self.session.if_stack

    def _error(self, message: str, statement: Statement) -> FXCoreSyntaxError:
        return FXCoreSyntaxError(f"{message} in '{statement.code}'.", self._source)

    def _operand(self, text: str) -> Operand:
        return Operand.parse(text, self.renames)

    def _skip_comment_line(self, statement: Statement) -> bool:
        # Lines inside a multi-line block comment (including its closing line) are never translated.
        if self.in_block_comment:
            if statement.block_comment_end:
                self.in_block_comment = False
            return True
        if statement.block_comment_start:
            self.in_block_comment = True
        return False

    def _rebuild(self, code: str, statement: Statement, remainder: list[str] | None = None, with_label: bool = True) -> str:
        text = f"{statement.prefix}{code}" if with_label else code

        # Tokens left over after the recognized part, e.g. 'acc32 = r1 xor 8 + 2'.
        if remainder:
            text = f"{text} {' '.join(remainder)}"

        parts = [text]
        if self.annotate:
            parts.append(f"/* {statement.text} */")
        if statement.comment != "":
            parts.append(statement.comment)
        return SEP2.join(parts)

    # region TOON -> assembler

    def toon_to_asm(self, line: str, source: SourceLine | None = None) -> str:
        """Returns `line` as-is, or the translated assembler text if it is a TOON statement."""
        self._source = source
        statement = Statement.parse(line, source)
        if self._skip_comment_line(statement):
            return line

        tokens = split_assignment(statement.text)
        n_tokens = len(tokens)
        if n_tokens == 0:
            return line
        keyword = tokens[0].upper()

        # Keep track of assembler .rn statements that give symbolic names to registers.
        if keyword == ".RN" and n_tokens >= 3:
            self.renames.rename(tokens[1], tokens[2])
            return line

        # Structured IF blocks.
        if keyword == "ELSE" and n_tokens == 1:
            return self._else(statement)
        if keyword == "ENDIF" and n_tokens == 1:
            return self._endif(statement)

        # All other TOON statements have at least 2 tokens.
        if n_tokens < 2:
            return line

        if keyword == "IF":
            return self._if(statement, tokens)

        # Unconditional branch.
        if keyword in ("GOTO", "JMP"):
            return self._rebuild(f"jmp{SEP1}{tokens[1]}", statement, tokens[2:])

        # Assignment style statements 'x = ...'.
        if tokens[1] in ("=", "+="):
            return self._assignment(statement, tokens)

        # Not TOON, pass it through.
        return line

    def _parse_condition(self, statement: Statement, tokens: list[str]) -> tuple[Condition, int]:
        # 'IF <cr> <condition> ...' where the condition is a single token ('>=0', 'gez', 'jgez')
        # or a comparison operator and its operand ('>= 0', '!= ACC32.SIGN').
        if len(tokens) < 3:
            raise self._error(f"Invalid IF statement syntax, expected a register and a condition but found only {len(tokens)} tokens", statement)

        register = self._operand(tokens[1])
        if not register.is_core:
            raise self._error(f"Invalid IF statement syntax, operand '{tokens[1]}' must be a CR", statement)

        expression = tokens[2].lower()
        i_next = 3
        if expression in comparison_operators:
            if len(tokens) < 4 or tokens[3].lower() not in comparison_operands:
                raise self._error(f"Invalid IF statement syntax, comparison '{tokens[2]}' must be followed by 0 or ACC32.SIGN", statement)
            expression += tokens[3].lower()
            i_next = 4

        condition = condition_expressions.get(expression)
        if condition is None:
            raise self._error(f"Invalid IF statement syntax, condition '{expression}' not recognized", statement)
        return (condition, i_next)

    def _if(self, statement: Statement, tokens: list[str]) -> str:
        (condition, i_next) = self._parse_condition(statement, tokens)
        register = tokens[1]

        # Without a label this opens a structured block.
        if i_next == len(tokens):
            return self._open_block(statement, condition, register)

        # Skip optional 'GOTO' token.
        i_label = i_next
        if tokens[i_label].upper() == "GOTO":
            i_label += 1
            if i_label == len(tokens):
                raise self._error("Invalid IF statement syntax, missing label after GOTO", statement)

        return self._rebuild(f"{condition.name.lower()}{SEP1}{register},{tokens[i_label]}", statement, tokens[(i_label + 1):])

    def _open_block(self, statement: Statement, condition: Condition, register: str) -> str:
        # The branch skips the true block, so it must be taken when the condition is false.
        inverse = inverse_condition(condition)
        if inverse is None:
            raise self._error(f"Condition '{condition.name.lower()}' has no inverse and can't open an IF block, use 'IF ... GOTO <label>'", statement)

        self.session.if_count += 1
        frame = IfFrame(
            statement,
            condition,
            f"{ELSE_LABEL_PREFIX}{self.session.if_count}",
            f"{ENDIF_LABEL_PREFIX}{self.session.if_count}",
        )
        self.if_stack.append(frame)
        logger.debug(f"Opened IF block {frame.else_label}/{frame.end_label} at depth {len(self.if_stack)}")
        return self._rebuild(f"{inverse.name.lower()}{SEP1}{register},{frame.else_label}", statement)

    def _else(self, statement: Statement) -> str:
        if len(self.if_stack) == 0:
            raise self._error("ELSE without a matching IF", statement)
        frame = self.if_stack[-1]
        if frame.else_emitted:
            raise self._error(f"Duplicate ELSE for the IF in {frame.statement.source.describe()}", statement)

        # End of the true block jumps over the else block.
        frame.else_emitted = True
        return "\n".join([
            self._rebuild(f"jmp{SEP1}{frame.end_label}", statement),
            f"{frame.else_label}:",
        ])

    def _endif(self, statement: Statement) -> str:
        if len(self.if_stack) == 0:
            raise self._error("ENDIF without a matching IF", statement)
        frame = self.if_stack.pop()

        lines: list[str] = []
        if statement.label != "":
            lines.append(f"{statement.label}:")
        if not frame.else_emitted:
            lines.append(f"{frame.else_label}:")
        lines.append(self._rebuild(f"{frame.end_label}:", statement, with_label=False))
        return "\n".join(lines)

    def finish(self):
        """Check that every structured IF has been closed at the end of the input."""
        if len(self.if_stack) > 0:
            frame = self.if_stack[-1]
            raise FXCoreSyntaxError(f"IF statement '{frame.statement.text}' is not closed, missing ENDIF ({len(self.if_stack)} open IF blocks).", frame.statement.source)

    def _assignment(self, statement: Statement, tokens: list[str]) -> str:
        n_tokens = len(tokens)
        if n_tokens < 3:
            raise self._error("Invalid TOON instruction format, missing right side of assignment", statement)

        left = self._operand(tokens[0])
        right = self._operand(tokens[2])

        # '+=' only decorates ACC64 multiply-accumulate assignments.
        if tokens[1] == "+=":
            if not left.is_acc64:
                raise self._error("Summing operator '+=' is only valid for ACC64 assignments", statement)
            if not left.is_plain:
                raise self._error("Indirect and modifications on ACC64 are not valid for summing operator '+=' assignments", statement)
            if n_tokens < 4 or tokens[3].lower() not in binary_acc64_operations:
                raise self._error(f"Summing operator is not valid for '{' '.join(tokens[3:4])}' instruction", statement)

        # ACC64 load from a 32 bit register, 'acc64.u = r5'.
        if left.is_acc64 and n_tokens == 3:
            if not right.is_core:
                raise self._error("Right side of ACC64 assignment must be a CR", statement)
            match left.modifier:
                case Modifier.UPPER:
                    return self._rebuild(f"ldacc64u{SEP1}{right.name}", statement)
                case Modifier.LOWER:
                    return self._rebuild(f"ldacc64l{SEP1}{right.name}", statement)
                case _:
                    raise self._error("ACC64 must have .U or .L (Upper/Lower) postfix", statement)

        # 32 bit register read of ACC64, 'r5 = acc64.l'.
        if right.is_acc64 and n_tokens == 3:
            if not left.is_core:
                raise self._error("Left side of ACC64 assignment must be a CR", statement)
            match right.modifier:
                case Modifier.UPPER:
                    return self._rebuild(f"rdacc64u{SEP1}{left.name}", statement)
                case Modifier.LOWER:
                    return self._rebuild(f"rdacc64l{SEP1}{left.name}", statement)
                case Modifier.SATURATE:
                    return self._rebuild(f"sat64{SEP1}{left.name}", statement)
                case _:
                    raise self._error("ACC64 must have .U or .L (Upper/Lower) or .SAT (Saturated) postfix", statement)

        # 1 operand ACC32 functions, 'acc32 = <func> <cr>'.
        if tokens[2].lower() in unary_acc32_operations:
            return self._unary_acc32(statement, tokens, left)

        # 2 operand ACC32 functions, 'acc32 = <cr> <func> <op2>'.
        if n_tokens >= 4 and tokens[3].lower() in binary_acc32_operations:
            return self._binary_acc32(statement, tokens, left)

        # 2 operand ACC64 functions, 'acc64 += <op1> <func> <op2>'.
        if n_tokens >= 4 and tokens[3].lower() in binary_acc64_operations:
            return self._binary_acc64(statement, tokens, left)

        # Register to register copies.
        if left.is_register and right.is_register:
            return self._copy(statement, tokens, left, right)

        # Assignment to a CR from a non-register source.
        if left.is_core:
            # Zero to ACC32 is done by XOR of ACC32 with itself.
            if left.is_acc32 and left.is_plain and right.is_plain and n_tokens == 3 and is_zero(right.text):
                return self._rebuild(f"xor{SEP1}{left.name},{left.name}", statement)

            # 16-bit load of constant to upper part of CR, 'r5.u = 3829'.
            if left.modifier == Modifier.UPPER and not left.is_indirect and right.is_plain:
                return self._rebuild(f"wrdld{SEP1}{left.name},{right.name}", statement, tokens[3:])

            # Load from fixed delay memory address, 'r5 = (3920)'.
            if left.is_plain and not right.is_modified and right.mode == AddressingMode.DELAY_INDIRECT:
                return self._rebuild(f"rddel{SEP1}{left.name},{right.name}", statement, tokens[3:])

            raise self._error("Invalid NonRegister-to-CR assignment statement", statement)

        # Assignment from a CR to a non-register target.
        if right.is_core:
            # Write fixed delay memory address from CR, '(3920) = r5'.
            if not left.is_modified and left.mode == AddressingMode.DELAY_INDIRECT and right.is_plain:
                return self._rebuild(f"wrdel{SEP1}{left.name},{right.name}", statement, tokens[3:])
            raise self._error("Invalid CR-to-NonRegister assignment statement", statement)

        raise self._error("Invalid assignment statement, function or operand types are not recognized", statement)

    def _unary_acc32(self, statement: Statement, tokens: list[str], left: Operand) -> str:
        operation = tokens[2].lower()
        if len(tokens) < 4:
            raise self._error(f"Invalid assignment, missing expected operand after '{tokens[2]}'", statement)
        if not left.is_acc32:
            raise self._error(f"Target of assignment for '{tokens[2]}' function must be ACC32", statement)
        right = self._operand(tokens[3])

        # 'acc32 = interp (cr+const)', the operand is the indirect sum of a CR and a constant.
        if operation == "interp":
            if right.mode != AddressingMode.DELAY_INDIRECT:
                raise self._error("INTERP operand must be indirect '(CR)' or '(CR+constant)', expected parens not found", statement)
            parts = right.name.split("+", 1)
            register = self._operand(parts[0].strip())
            constant = self._operand(parts[1].strip() if len(parts) == 2 else "0")
            if not register.is_core:
                raise self._error("INTERP operand must be of the form '(CR)' or '(CR+constant)', CR not found", statement)
            if constant.is_register:
                raise self._error("INTERP operand must be of the form '(CR)' or '(CR+constant)', constant not found", statement)
            return self._rebuild(f"interp{SEP1}{register.name},{constant.name}", statement, tokens[4:])

        if not left.is_plain or not right.is_plain:
            raise self._error("This assignment operation does not support indirection or modifiers", statement)
        if not right.is_core:
            raise self._error("Source for assignment operation must be a CR", statement)
        return self._rebuild(f"{operation}{SEP1}{right.name}", statement, tokens[4:])

    def _binary_acc32(self, statement: Statement, tokens: list[str], left: Operand) -> str:
        operation = tokens[3].lower()
        if len(tokens) < 5:
            raise self._error(f"Invalid assignment, missing expected operand after '{operation}'", statement)
        op1 = self._operand(tokens[2])
        op2 = self._operand(tokens[4])

        if not left.is_acc32:
            raise self._error(f"Target of assignment for '{operation}' function must be ACC32", statement)
        if not left.is_plain:
            raise self._error("This assignment operation does not support indirection or modifiers on ACC32", statement)
        if not op1.is_core or not op1.is_plain:
            raise self._error(f"Left operand for function '{operation}' must be a CR without indirection or modifiers", statement)

        operation = infer_operation(operation, op1, op2, statement, self._source)
        return self._rebuild(f"{operation}{SEP1}{op1.name},{op2.name}", statement, tokens[5:])

    def _binary_acc64(self, statement: Statement, tokens: list[str], left: Operand) -> str:
        operation = tokens[3].lower()
        if len(tokens) < 5:
            raise self._error(f"Invalid assignment, missing expected operand after '{operation}'", statement)
        op1 = self._operand(tokens[2])
        op2 = self._operand(tokens[4])

        if not left.is_acc64:
            raise self._error(f"Target of assignment for '{operation}' function must be ACC64", statement)
        if not left.is_plain:
            raise self._error("This assignment operation does not support indirection or modifiers on ACC64", statement)

        operation = infer_operation(operation, op1, op2, statement, self._source)

        # Left side must be a CR for all but the immediate delay memory forms.
        if operation in ("macid", "machid"):
            if op1.is_register:
                raise self._error(f"Left operand for function '{operation}' cannot be a register, immediate constant value is required", statement)
        elif not op1.is_core:
            raise self._error(f"Left operand for function '{operation}' must be a CR", statement)

        # Delay memory forms address memory indirectly.
        if operation in ("macrd", "macid", "machrd", "machid") and op2.mode != AddressingMode.DELAY_INDIRECT:
            raise self._error(f"Right operand for function '{operation}' is a delay memory address and must be enclosed in parens", statement)

        return self._rebuild(f"{operation}{SEP1}{op1.name},{op2.name}", statement, tokens[5:])

    def _copy(self, statement: Statement, tokens: list[str], left: Operand, right: Operand) -> str:
        opcode: str | None = None
        if left.is_modified or right.is_modified:
            raise self._error("Invalid register-to-register assignment statement, modifiers are not supported", statement)

        match (left.mode, right.mode):
            case (AddressingMode.PLAIN, AddressingMode.PLAIN):
                opcode = f"cpy_{left.class_code}{right.class_code}"
            case (AddressingMode.PLAIN, AddressingMode.MEMORY_INDIRECT):
                opcode = "cpy_cmx"
            case (AddressingMode.PLAIN, AddressingMode.DELAY_INDIRECT):
                opcode = "rddelx"
            case (AddressingMode.PLAIN, AddressingMode.ABSOLUTE_DELAY_INDIRECT):
                opcode = "rddirx"
            case (AddressingMode.DELAY_INDIRECT, AddressingMode.PLAIN):
                opcode = "wrdelx"
            case (AddressingMode.ABSOLUTE_DELAY_INDIRECT, AddressingMode.PLAIN):
                opcode = "wrdirx"

        # Only some register class pairs have a copy instruction, there is no 'cpy_ms' or 'cpy_ss'.
        if opcode is None or opcode not in copy_instructions:
            raise self._error("Invalid register-to-register assignment statement", statement)

        # Indirect forms work on core registers only.
        if opcode in ("cpy_cmx", "rddelx", "rddirx", "wrdelx", "wrdirx") and (not left.is_core or not right.is_core):
            raise self._error(f"Left and right sides of indirect assignment ({opcode}) must be a CR", statement)

        return self._rebuild(f"{opcode}{SEP1}{left.name},{right.name}", statement, tokens[3:])

    # endregion TOON -> assembler

    # region assembler -> TOON

    def asm_to_toon(self, line: str, source: SourceLine | None = None) -> str:
        """
        Returns `line` as-is, or the equivalent TOON statement if it is an FXCore assembler statement that has one.
        This assumes valid assembler code, it does not validate it.
        """
        self._source = source
        statement = Statement.parse(line, source)
        if self._skip_comment_line(statement):
            return line

        # '<opcode> <op1>[,<op2>]'
        parts = statement.text.split(None, 1)
        if len(parts) < 2:
            return line
        opcode = parts[0].lower()
        operands = parts[1].split(",", 1)
        op1 = operands[0].strip()
        op2 = operands[1].strip() if len(operands) > 1 else ""

        match instruction_family(opcode):
            case InstructionFamily.COPY:
                (target, value) = _copy_to_toon(opcode, op1, op2)
                return self._rebuild(f"{target}{SEP3}= {value}", statement)
            case InstructionFamily.UNARY:
                return self._rebuild(f"ACC32{SEP3}= {opcode} {op1}", statement)
            case InstructionFamily.BINARY:
                generic = generic_forms.get(opcode, opcode)
                if generic in ("macr", "macd", "machr", "machd"):
                    if generic in ("macd", "machd"):
                        op2 = f"({op2})"
                    return self._rebuild(f"ACC64{SEP3}+= {op1} {generic} {op2}", statement)
                return self._rebuild(f"ACC32{SEP3}= {op1} {generic} {op2}", statement)
            case InstructionFamily.BRANCH:
                condition = branch_instructions[opcode]
                if condition is None:
                    return self._rebuild(f"GOTO {op1}", statement)
                return self._rebuild(f"IF {op1} {condition_spelling[condition]} GOTO {op2}", statement)
            case _:
                return line

    # endregion assembler -> TOON

def _copy_to_toon(opcode: str, op1: str, op2: str) -> tuple[str, str]:
    match opcode:
        case "cpy_cmx":
            return (op1, f"[{op2}]")
        case "wrdld":
            return (f"{op1}.U", op2)
        case "rdacc64u":
            return (op1, "ACC64.U")
        case "rdacc64l":
            return (op1, "ACC64.L")
        case "sat64":
            return (op1, "ACC64.SAT")
        case "ldacc64u":
            return ("ACC64.U", op1)
        case "ldacc64l":
            return ("ACC64.L", op1)
        case "rddel" | "rddelx":
            return (op1, f"({op2})")
        case "rddirx":
            return (op1, f"#({op2})")
        case "wrdel" | "wrdelx":
            return (f"({op1})", op2)
        case "wrdirx":
            return (f"#({op1})", op2)
        case "interp":
            if op2 == "0":
                return ("ACC32", f"INTERP ({op1})")
            return ("ACC32", f"INTERP ({op1}+{op2})")
        case _:
            return (op1, op2)

def split_assignment(text: str) -> list[str]:
    """
    Whitespace tokens of a statement, with an assignment operator glued to the first token ('a= b', 'a =b', 'a=b')
    split into its own token. IF statements are left alone, their conditions use comparison operators.
    """
    tokens = text.split()
    if len(tokens) == 0 or tokens[0].upper() == "IF":
        return tokens

    match = _assignment_pattern.match(text)
    if match is None:
        return tokens
    return [match.group(1), match.group(2), *match.group(3).split()]

def infer_operation(operation: str, op1: Operand, op2: Operand, statement: Statement, source: SourceLine | None = None) -> str:
    """
    Select the instruction variant for 'acc = <op1> <operation> <op2>'. Generic names pick the immediate or register
    form from the type of `op2` ('and' becomes 'andi' for a constant). An explicit form that doesn't match the operand
    type is an error, it is never corrected.
    """
    # Delay memory MAC forms select on the left operand.
    if operation in delay_memory_operations:
        (register_form, immediate_form) = delay_memory_operations[operation]
        return register_form if op1.is_register else immediate_form
    if operation in ("macrd", "machrd"):
        if not op1.is_register:
            raise FXCoreSyntaxError(f"Instruction '{operation}' requires a register left operand, but '{op1.name}' is not a register in '{statement.code}'.", source)
        return operation
    if operation in ("macid", "machid"):
        if op1.is_register:
            raise FXCoreSyntaxError(f"Instruction '{operation}' requires an immediate (constant) left operand, but '{op1.name}' is a register in '{statement.code}'.", source)
        return operation

    if op2.is_register:
        operation = register_forms.get(operation, operation)
        if operation in immediate_only_operations:
            raise FXCoreSyntaxError(f"Right operand '{op2.name}' is a register, but instruction '{operation}' requires an immediate (constant) value in '{statement.code}'.", source)
    else:
        operation = immediate_forms.get(operation, operation)
        if operation in register_only_operations:
            raise FXCoreSyntaxError(f"Right operand '{op2.name}' is not a register as required by instruction '{operation}' in '{statement.code}'.", source)
    return operation
