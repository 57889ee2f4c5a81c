import pytest

from fxcoremp import FXCoreSession
from fxmacro import Macro, MacroExpander
from fxsource import SourceLine, Statement
from fxtoon import ToonTranslator

@pytest.fixture
def session() -> FXCoreSession:
    return FXCoreSession(source_name="main.fxc", output_name="main.asm")

@pytest.fixture
def expander(session: FXCoreSession) -> MacroExpander:
    return MacroExpander(session)

@pytest.fixture
def translator(session: FXCoreSession) -> ToonTranslator:
    return ToonTranslator(session, annotate=False)

@pytest.fixture
def define(session: FXCoreSession):
    """Define a macro from its header line and (for multi-line macros) its body lines."""
    def _define(*lines: str) -> Macro:
        statements = [Statement.parse(line, SourceLine("lib.fxc", i_line, line)) for (i_line, line) in enumerate(lines)]
        return session.macros.define(Macro.parse(statements))
    return _define

@pytest.fixture
def expand(expander: MacroExpander):
    def _expand(line: str) -> list[str]:
        return expander.expand_statement(Statement.parse(line, SourceLine("main.fxc", 0, line)))
    return _expand
