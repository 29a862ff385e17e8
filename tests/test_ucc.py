"""
ucc Command-Line Test Suite
===========================

Runs the ucc command through click's CliRunner inside an isolated
filesystem and checks its output files, messages and exit codes.
"""

from pathlib import Path

import pytest
from click.testing import CliRunner

from microc import __version__
from microc.cli.errors import ExitCode, handle_cli_exception
from microc.cli.ucc import main
from microc.errors import InternalCompilerError
from microc.frontend import MicroCCompiler
from microc.runtime import ExecutionError

HELLO = "int main(void) { putint(42); return 0; }\n"
ECHO = "int main(void) { char s[32]; getstring(s); putstring(s); return 0; }\n"


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, source: str, args: list[str], name: str = "prog.uc"):
    """Write `source` to `name` and run ucc with `args`."""
    Path(name).write_text(source)
    return runner.invoke(main, args)


class TestCompile:
    """Default mode: write the IR file."""

    def test_default_output_file(self, runner):
        """Without -o the IR goes next to the source with an .ir suffix."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["prog.uc"])

            assert result.exit_code == 0, result.output
            assert "Compiled prog.uc -> prog.ir" in result.output
            expected = MicroCCompiler().compile_source(HELLO).ir_text
            assert Path("prog.ir").read_text() == expected

    def test_explicit_output_file(self, runner):
        """-o names the IR file."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["prog.uc", "-o", "out.ir"])

            assert result.exit_code == 0, result.output
            assert Path("out.ir").exists()
            assert not Path("prog.ir").exists()
            assert "function int main(void) frame 0" in Path("out.ir").read_text()

    def test_verbose(self, runner):
        """-v reports progress."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["-v", "prog.uc"])

            assert result.exit_code == 0
            assert "Compiling prog.uc" in result.output
            assert "Lowered: 1 functions" in result.output

    def test_version(self, runner):
        """--version prints the package version."""
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestEmit:
    """--emit tokens and --emit ast."""

    def test_tokens(self, runner):
        """Tokens are listed one per line with their position."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["--emit", "tokens", "prog.uc"])

            assert result.exit_code == 0
            lines = result.output.splitlines()
            assert lines[0] == "1:1\tINT\tint"
            assert lines[1] == "1:5\tIDENTIFIER\tmain"
            assert lines[-1].split("\t")[1] == "EOF"
            assert not Path("prog.ir").exists()

    def test_ast(self, runner):
        """The checked AST is printed as an indented tree."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["--emit", "AST", "prog.uc"])

            assert result.exit_code == 0
            lines = result.output.splitlines()
            assert lines[0] == "Program"
            assert lines[1] == "  Function: int main(void)"

    def test_ast_of_ill_typed_program(self, runner):
        """The AST is printed after parsing, so type errors do not block it."""
        source = "int main(void) { return undefined_name; }\n"
        with runner.isolated_filesystem():
            result = invoke(runner, source, ["--emit", "ast", "prog.uc"])

            assert result.exit_code == 0, result.output
            assert "Return undefined_name" in result.output

    def test_tokens_of_unparsable_program(self, runner):
        """Tokens are listed after lexing, even when the program does not parse."""
        with runner.isolated_filesystem():
            result = invoke(runner, "int ) (\n", ["--emit", "tokens", "prog.uc"])

            assert result.exit_code == 0, result.output
            assert [line.split("\t")[1] for line in result.output.splitlines()] == [
                "INT", "RPAREN", "LPAREN", "EOF",
            ]

    def test_ast_still_requires_valid_syntax(self, runner):
        """A syntax error still fails --emit ast."""
        with runner.isolated_filesystem():
            result = invoke(runner, "int main(void) { return 1 }\n", ["--emit", "ast", "prog.uc"])
            assert result.exit_code == ExitCode.BUILD_ERROR


class TestStopAfter:
    """MicroCCompiler can end after an early phase."""

    def test_stop_after_parse(self):
        """Later result fields stay empty and the result counts as a success."""
        result = MicroCCompiler().compile_source("int main(void) { return x; }", stop_after="parse")
        assert result.success
        assert result.ast is not None
        assert result.symbols is None
        assert result.ir is None
        assert result.ir_text == ""

    def test_stop_after_check(self):
        """Stopping after the checker keeps the symbol table."""
        result = MicroCCompiler().compile_source("int main(void) { return 0; }", stop_after="check")
        assert result.symbols is not None
        assert result.ir is None

    def test_unknown_phase(self):
        """Only lex, parse and check are valid stopping points."""
        with pytest.raises(ValueError, match="unknown phase 'lower'"):
            MicroCCompiler().compile_source("int main(void) { return 0; }", stop_after="lower")


class TestRun:
    """--run executes the program."""

    def test_run_prints_program_output(self, runner):
        """The program's output is echoed and no IR file is written."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["--run", "prog.uc"])

            assert result.exit_code == 0
            assert result.output == "42"
            assert not Path("prog.ir").exists()

    def test_run_with_output(self, runner):
        """--run with -o also writes the IR."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["--run", "prog.uc", "-o", "prog.ir"])

            assert result.exit_code == 0
            assert Path("prog.ir").exists()

    def test_run_with_stdin(self, runner):
        """--stdin feeds a file to getstring."""
        with runner.isolated_filesystem():
            Path("input.txt").write_text("hello there\n")
            result = invoke(runner, ECHO, ["--run", "prog.uc", "--stdin", "input.txt"])

            assert result.exit_code == 0
            assert result.output == "hello there"

    def test_stdin_requires_run(self, runner):
        """--stdin alone is an argument error."""
        with runner.isolated_filesystem():
            Path("input.txt").write_text("x\n")
            result = invoke(runner, ECHO, ["prog.uc", "--stdin", "input.txt"])

            assert result.exit_code == ExitCode.INVALID_ARGS
            assert "--stdin requires --run" in result.output

    def test_runtime_fault(self, runner):
        """A fault during --run exits with a build error."""
        source = "int main(void) { int z; z = 0; return 1 / z; }\n"
        with runner.isolated_filesystem():
            result = invoke(runner, source, ["--run", "prog.uc"])

            assert result.exit_code == ExitCode.BUILD_ERROR
            assert "Error: division by zero" in result.output


class TestDiagnostics:
    """Errors, warnings and exit codes."""

    def test_compile_error(self, runner):
        """Front-end errors exit with 1 and print the full report."""
        source = "int main(void) {\n  return x;\n}\n"
        with runner.isolated_filesystem():
            result = invoke(runner, source, ["prog.uc"])

            assert result.exit_code == ExitCode.BUILD_ERROR
            assert "prog.uc:2:10: error: undeclared identifier 'x'" in result.output
            assert "1 error, 0 warnings" in result.output
            assert not Path("prog.ir").exists()

    def test_warning_does_not_fail(self, runner):
        """Warnings are printed and compilation still succeeds."""
        source = "int main(void) { char c[1]; c[1] = 0; return 0; }\n"
        with runner.isolated_filesystem():
            result = invoke(runner, source, ["prog.uc"])

            assert result.exit_code == 0
            assert "warning: index 1 is outside the bounds of 'c'" in result.output

    def test_no_strict_returns(self, runner):
        """--no-strict-returns turns a missing return into a warning."""
        source = "int f(void) { }\nint main(void) { return f(); }\n"
        with runner.isolated_filesystem():
            strict = invoke(runner, source, ["prog.uc"])
            lenient = runner.invoke(main, ["--no-strict-returns", "prog.uc"])

            assert strict.exit_code == ExitCode.BUILD_ERROR
            assert lenient.exit_code == 0
            assert "warning: control reaches end of non-void function 'f'" in lenient.output

    def test_no_runtime_prototypes(self, runner):
        """Without runtime prototypes, putint must be declared."""
        with runner.isolated_filesystem():
            result = invoke(runner, HELLO, ["--no-runtime-prototypes", "prog.uc"])

            assert result.exit_code == ExitCode.BUILD_ERROR
            assert "call to undeclared function 'putint'" in result.output

    def test_missing_input(self, runner):
        """A missing input file is a usage error."""
        with runner.isolated_filesystem():
            result = runner.invoke(main, ["missing.uc"])
            assert result.exit_code == ExitCode.INVALID_ARGS


class TestExitCodes:
    """handle_cli_exception maps exceptions to exit codes."""

    @pytest.mark.parametrize("error, code", [
        (InternalCompilerError("bad IR"), ExitCode.INTERNAL_ERROR),
        (ExecutionError("division by zero"), ExitCode.BUILD_ERROR),
        (FileNotFoundError("nope.uc"), ExitCode.INVALID_ARGS),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ])
    def test_mapping(self, error, code):
        """Each exception family has its own exit code."""
        with pytest.raises(SystemExit) as excinfo:
            handle_cli_exception(error)
        assert excinfo.value.code == code
