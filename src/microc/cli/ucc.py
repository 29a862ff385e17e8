"""
ucc - µC Compiler Command-Line Interface
========================================

Compiles a µC source file to textual IR, or runs it with the reference
runtime.

Usage Examples
--------------
Basic compilation (writes fac.ir):
    $ ucc fac.uc

With output file:
    $ ucc fac.uc -o out.ir

Inspect the front-end:
    $ ucc --emit tokens fac.uc
    $ ucc --emit ast fac.uc

Compile and run, feeding standard input from a file:
    $ ucc --run eval.uc --stdin input.txt

Verbose mode (debug logging from every phase):
    $ ucc -v fac.uc
"""

import logging
from pathlib import Path
from typing import Optional

import click

from microc import __version__
from microc.cli.errors import handle_cli_exception
from microc.frontend import CompilerOptions, MicroCCompiler
from microc.frontend.ast import ASTPrinter
from microc.runtime import run_program

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(name)s: %(message)s" if verbose else "%(message)s",
    )


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output IR file (default: input.ir)",
)
@click.option(
    "--emit",
    type=click.Choice(["ir", "ast", "tokens"], case_sensitive=False),
    default="ir",
    show_default=True,
    help="What to produce: IR file, AST dump or token list",
)
@click.option(
    "--run",
    is_flag=True,
    help="Execute the program with the reference runtime",
)
@click.option(
    "--stdin", "stdin_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File supplying standard input for --run",
)
@click.option(
    "--no-strict-returns",
    is_flag=True,
    help="Report a missing return as a warning instead of an error",
)
@click.option(
    "--no-runtime-prototypes",
    is_flag=True,
    help="Do not predeclare putint, putstring and getstring",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="ucc")
def main(
    input_file: Path,
    output: Optional[Path],
    emit: str,
    run: bool,
    stdin_file: Optional[Path],
    no_strict_returns: bool,
    no_runtime_prototypes: bool,
    verbose: bool,
) -> None:
    """
    Compile µC source code to three-address IR.

    INPUT_FILE is the µC source file to compile.

    \b
    Examples:
        ucc fac.uc                   # Outputs fac.ir
        ucc fac.uc -o out.ir         # Specify output file
        ucc --emit ast fac.uc        # Print the syntax tree
        ucc --run fac.uc             # Compile and execute
        ucc -v fac.uc                # Verbose output

    \b
    Exit codes:
        0  success
        1  compilation errors, or a runtime fault with --run
        2  invalid arguments or missing files
        3  internal compiler error
    """
    setup_logging(verbose)

    options = CompilerOptions(
        strict_returns=not no_strict_returns,
        inject_runtime=not no_runtime_prototypes,
    )
    logger.debug(f"{options}")

    try:
        if stdin_file is not None and not run:
            raise click.BadParameter("--stdin requires --run", param_hint="--stdin")

        if verbose:
            click.echo(f"Compiling {input_file}...")

        # Token and AST dumps stop after the phase that produces them
        emit = emit.lower()
        stop_after = {"tokens": "lex", "ast": "parse"}.get(emit)

        compiler = MicroCCompiler(options)
        result = compiler.compile_file(input_file, stop_after=stop_after)

        for warning in result.warnings:
            click.echo(warning, err=True)

        if emit == "tokens":
            for token in result.tokens:
                click.echo(f"{token.line}:{token.column}\t{token.type.name}\t{token.lexeme}")
            return

        if emit == "ast":
            click.echo(ASTPrinter().print(result.ast))
            return

        if run:
            stdin = stdin_file.read_text(encoding="latin-1") if stdin_file else ""
            execution = run_program(result.ir, stdin=stdin)
            click.echo(execution.stdout, nl=False)
            if output is not None:
                output.write_text(result.ir_text, encoding="utf-8")
            if verbose:
                click.echo(f"\nExecuted {execution.steps} steps, exit code {execution.exit_code}", err=True)
            return

        if output is None:
            output = input_file.with_suffix(".ir")
        output.write_text(result.ir_text, encoding="utf-8")

        if verbose:
            click.echo(f"Tokenized: {result.token_count} tokens")
            click.echo(f"Lowered: {len(result.ir.functions)} functions")

        click.echo(f"Compiled {input_file} -> {output}")

    except Exception as e:
        handle_cli_exception(e, verbose)


if __name__ == "__main__":
    main()
