from enum import Enum
import re

MACRO_MARKER = "$"
MULTILINE_MARKER = "++"

MAX_MACRO_DEPTH = 64

ELSE_LABEL_PREFIX = "_else_"
ENDIF_LABEL_PREFIX = "_endif_"

class RegisterClass(Enum):
    NONE = 0
    CORE = 1
    MEMORY = 2
    SPECIAL = 3
    ACC64 = 4

class AddressingMode(Enum):
    PLAIN = 0
    DELAY_INDIRECT = 1
    ABSOLUTE_DELAY_INDIRECT = 2
    MEMORY_INDIRECT = 3

class Modifier(Enum):
    NONE = 0
    UPPER = 1
    LOWER = 2
    SATURATE = 3

class Direction(Enum):
    ANY = 0
    IN = 1
    OUT = 2
    INOUT = 3

class Condition(Enum):
    JGEZ = 0
    JNEG = 1
    JZ = 2
    JNZ = 3
    JZC = 4

class InstructionFamily(Enum):
    COPY = 0
    UNARY = 1
    BINARY = 2
    BRANCH = 3

# Direction markers on macro parameters and named arguments.
# Checked in this order, '<=>' contains both of the shorter markers.
direction_markers = {
    "<=>": Direction.INOUT,
    "<=": Direction.IN,
    "=>": Direction.OUT,
}

# Addressing mode decorations, checked in this order: (prefix, suffix, mode).
addressing_decorations = [
    ("(", ")", AddressingMode.DELAY_INDIRECT),
    ("#(", ")", AddressingMode.ABSOLUTE_DELAY_INDIRECT),
    ("[", "]", AddressingMode.MEMORY_INDIRECT),
]

modifier_suffixes = {
    ".U": Modifier.UPPER,
    ".L": Modifier.LOWER,
    ".SAT": Modifier.SATURATE,
}

# All FXCore special function registers.
special_function_registers = frozenset({
    "IN0", "IN1", "IN2", "IN3",
    "OUT0", "OUT1", "OUT2", "OUT3",
    "PIN", "SWITCH",
    "POT0_K", "POT1_K", "POT2_K", "POT3_K", "POT4_K", "POT5_K",
    "POT0", "POT1", "POT2", "POT3", "POT4", "POT5",
    "POT0_SMTH", "POT1_SMTH", "POT2_SMTH", "POT3_SMTH", "POT4_SMTH", "POT5_SMTH",
    "LFO0_F", "LFO1_F", "LFO2_F", "LFO3_F",
    "RAMP0_F", "RAMP1_F",
    "LFO0_S", "LFO0_C", "LFO1_S", "LFO1_C", "LFO2_S", "LFO2_C", "LFO3_S", "LFO3_C",
    "RAMP0_R", "RAMP1_R",
    "MAXTEMPO", "TAPTEMPO", "SAMPLECNT", "NOISE", "BOOTSTAT",
    "TAPSTKRLD", "TAPDBRLD", "SWDBRLD", "PRGDBRLD", "OFLRLD",
})

_core_register_pattern = re.compile(r"R[0-9]+")
_memory_register_pattern = re.compile(r"MR[0-9]+")

def register_class(name: str) -> RegisterClass:
    name = name.upper()
    if name in ("ACC32", "FLAGS") or _core_register_pattern.fullmatch(name):
        return RegisterClass.CORE
    if _memory_register_pattern.fullmatch(name):
        return RegisterClass.MEMORY
    if name in special_function_registers:
        return RegisterClass.SPECIAL
    if name == "ACC64":
        return RegisterClass.ACC64
    return RegisterClass.NONE

def is_compatible_direction(declared: Direction, used: Direction) -> bool:
    if declared == used:
        return True
    return declared == Direction.ANY or used == Direction.ANY

def inverse_condition(condition: Condition) -> Condition | None:
    match condition:
        case Condition.JZC:
            # There is no "jump if not zero crossing" instruction.
            return None
        case _:
            return list(Condition)[condition.value ^ 1]

# Single token IF conditions: 'IF r0 >=0 label', 'IF r0 gez label', 'IF r0 jgez label'.
condition_expressions = {
    ">=0": Condition.JGEZ,
    "gez": Condition.JGEZ,
    "jgez": Condition.JGEZ,
    "<0": Condition.JNEG,
    "neg": Condition.JNEG,
    "jneg": Condition.JNEG,
    "!=0": Condition.JNZ,
    "<>0": Condition.JNZ,
    "nz": Condition.JNZ,
    "jnz": Condition.JNZ,
    "=0": Condition.JZ,
    "==0": Condition.JZ,
    "z": Condition.JZ,
    "jz": Condition.JZ,
    "!=acc32.sign": Condition.JZC,
    "<>acc32.sign": Condition.JZC,
    "zc": Condition.JZC,
    "jzc": Condition.JZC,
}

# Spaced IF conditions: 'IF r0 >= 0 label'.
comparison_operators = frozenset({">=", "<", "!=", "<>", "=", "=="})
comparison_operands = frozenset({"0", "acc32.sign"})

# Canonical TOON spelling of each branch condition (asm -> TOON).
condition_spelling = {
    Condition.JGEZ: ">=0",
    Condition.JNEG: "<0",
    Condition.JNZ: "!=0",
    Condition.JZ: "=0",
    Condition.JZC: "!=ACC32.SIGN",
}

# Assignment style operations.
# 1 operand instructions that target ACC32: 'acc32 = <op> <cr>'
unary_acc32_operations = frozenset({"inv", "abs", "neg", "log2", "exp2", "interp"})

# 2 operand instructions that target ACC32: 'acc32 = <cr> <op> <value>'
binary_acc32_operations = frozenset({
    "add", "addi", "adds", "addsi",
    "sub", "subs",
    "sl", "slr", "sls", "slsr",
    "sr", "srr", "sra", "srar",
    "or", "ori", "and", "andi", "xor", "xori",
    "mult", "multrr", "multri",
})

# 2 operand instructions that target ACC64: 'acc64 += <value> <op> <value>'
binary_acc64_operations = frozenset({
    "macr", "macrr", "macri",
    "macd", "macrd", "macid",
    "machr", "machrr", "machri",
    "machd", "machrd", "machid",
})

# Generic mnemonics that select the immediate form when the right operand is not a register.
immediate_forms = {
    "add": "addi",
    "adds": "addsi",
    "or": "ori",
    "and": "andi",
    "xor": "xori",
    "mult": "multri",
    "macr": "macri",
    "machr": "machri",
}

# Generic mnemonics that select the register form when the right operand is a register.
register_forms = {
    "mult": "multrr",
    "sl": "slr",
    "sls": "slsr",
    "sr": "srr",
    "sra": "srar",
    "macr": "macrr",
    "machr": "machrr",
}

register_only_operations = frozenset({"sub", "subs", "multrr", "slr", "slsr", "srr", "srar", "macrr", "machrr"})
immediate_only_operations = frozenset({"addi", "addsi", "ori", "andi", "xori", "multri", "sl", "sls", "sr", "sra", "macri", "machri"})

# Delay memory MAC operations, the variant is selected by the left operand.
delay_memory_operations = {
    "macd": ("macrd", "macid"),
    "machd": ("machrd", "machid"),
}

# Assembler instruction families that can be written back as TOON.
copy_instructions = frozenset({
    "cpy_cm", "cpy_mc", "cpy_cs", "cpy_sc", "cpy_cc", "cpy_cmx",
    "wrdld",
    "rdacc64u", "rdacc64l", "sat64", "ldacc64u", "ldacc64l",
    "rddel", "wrdel", "rddelx", "wrdelx", "rddirx", "wrdirx",
    "interp",
})
unary_instructions = frozenset({"inv", "abs", "neg", "log2", "exp2"})
binary_instructions = frozenset({
    "addi", "add", "adds", "addsi", "sub", "subs",
    "sl", "slr", "sls", "slsr", "sr", "srr", "sra", "srar",
    "or", "ori", "and", "andi", "xor", "xori",
    "multrr", "multri",
    "macrr", "macri", "macrd", "macid", "machrr", "machri", "machrd", "machid",
})
branch_instructions = {
    "jgez": Condition.JGEZ,
    "jneg": Condition.JNEG,
    "jnz": Condition.JNZ,
    "jz": Condition.JZ,
    "jzc": Condition.JZC,
    "jmp": None,
}

# Immediate and register forms collapse back into the generic TOON mnemonic.
generic_forms = {
    "andi": "and",
    "ori": "or",
    "xori": "xor",
    "slr": "sl",
    "slsr": "sls",
    "srr": "sr",
    "srar": "sra",
    "addi": "add",
    "addsi": "adds",
    "multrr": "mult",
    "multri": "mult",
    "macrr": "macr",
    "macri": "macr",
    "macrd": "macd",
    "macid": "macd",
    "machrr": "machr",
    "machri": "machr",
    "machrd": "machd",
    "machid": "machd",
}

def instruction_family(opcode: str) -> InstructionFamily | None:
    opcode = opcode.lower()
    if opcode in copy_instructions:
        return InstructionFamily.COPY
    if opcode in unary_instructions:
        return InstructionFamily.UNARY
    if opcode in binary_instructions:
        return InstructionFamily.BINARY
    if opcode in branch_instructions:
        return InstructionFamily.BRANCH
    return None
