import typer
from pathlib import Path
from typing import Optional, List
from enum import Enum
import json
import importlib.metadata
import logging
from rich.markup import escape
from rich.console import Console
from rich.table import Table
from contextlib import contextmanager
import yaml
from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn

from commentsniff.core.scanner import FileScanner
from commentsniff.core.rules.keyword_rule import KeywordCommentRule, warning_for
from commentsniff.config.settings import (
    CONFIG_FILE_NAME,
    ConfigError,
    find_config_file,
    load_config,
    validate_config,
)

class OutputFormat(str, Enum):
    table = "table"
    json = "json"

app = typer.Typer(
    name="commentsniff",
    help="Find discouraged keywords (todo, fixme, hack) in source code comments.",
    add_completion=False,
)
console = Console()

# Global flag for debug mode
DEBUG = False

EXIT_CODES = {
    0: "Success - No discouraged keywords found or operation completed successfully",
    1: "Error - General error or keywords found (with --fail-on-finding)",
    2: "Configuration error",
}

@contextmanager
def _debug_exception_handler():
    """A context manager to handle exceptions based on the global DEBUG flag."""
    try:
        yield
    except typer.Exit:
        raise
    except ConfigError as e:
        if DEBUG:
            raise
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(code=2)
    except Exception as e:
        if DEBUG:
            # In debug mode, re-raise the exception to get a full stack trace
            raise
        console.print(f"[bold red]An unexpected error occurred:[/bold red] {escape(str(e))}", style="red")
        raise typer.Exit(code=1)

keywords_app = typer.Typer(name="keywords", help="Inspect or change the discouraged keyword set.")
app.add_typer(keywords_app)

def version_callback(value: bool):
    """Prints the version of the application."""
    if value:
        try:
            version = importlib.metadata.version("commentsniff")
            typer.echo(f"commentsniff version: {version}")
        except importlib.metadata.PackageNotFoundError:
            typer.echo("commentsniff version: (local development build)")
        raise typer.Exit()

def _keyword_block(config: dict) -> dict:
    return config.setdefault("rules", {}).setdefault("detectors", {}).setdefault("keyword", {})

@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show the application's version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Path to a file to write logs to.",
        writable=True,
        resolve_path=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose logging.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode (show full stack traces on errors).",
    ),
):
    """commentsniff flags the comments you promised to come back to."""
    global DEBUG
    DEBUG = debug
    log_level = logging.DEBUG if verbose else logging.INFO

    if log_file:
        # When logging to a file, use a detailed format.
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            filename=str(log_file),
            filemode='w',
            force=True,  # This allows re-configuring the logger in tests
        )
        console.log(f"Logging to file: [cyan]{log_file}[/cyan]")
    else:
        # Keep console output clean and use rich for formatting.
        from rich.logging import RichHandler
        logging.basicConfig(
            level=log_level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(show_path=False)],
            force=True,  # This allows re-configuring the logger in tests
        )

@app.command()
def scan(
    path: Path = typer.Argument(
        ".",
        exists=True,
        file_okay=True,
        dir_okay=True,
        readable=True,
        resolve_path=True,
        help="The path to a file or directory to scan.",
    ),
    keyword: Optional[List[str]] = typer.Option(
        None,
        "--keyword",
        "-k",
        help="Keyword to look for, replacing the configured set. Can be used multiple times.",
    ),
    exclude: Optional[List[str]] = typer.Option(
        None,
        "--exclude",
        "-e",
        help="Paths to exclude (glob patterns). Can be used multiple times.",
    ),
    max_file_size: Optional[str] = typer.Option(
        None,
        "--max-file-size",
        help="Override the maximum file size to scan (e.g., '10MB', '1GB').",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.table,
        "--format",
        "-f",
        case_sensitive=False,
        help="The output format for the findings.",
    ),
    fail_on_finding: bool = typer.Option(
        False,
        "--fail-on-finding",
        "--fail",
        help="Exit with a non-zero status code if any keyword is found.",
    ),
):
    """Scan a directory or file for discouraged keywords in comments."""
    with _debug_exception_handler():
        # Load the base configuration
        config = load_config()

        # Apply CLI overrides
        if keyword:
            block = _keyword_block(config)
            block["enabled"] = True
            block["keywords"] = list(keyword)
            logging.info(f"Using keywords: {', '.join(keyword)}")

        if exclude:
            config["rules"].setdefault("excluded_paths", []).extend(exclude)
            logging.info(f"Adding exclusion patterns: {', '.join(exclude)}")

        if max_file_size:
            value_to_set = max_file_size
            if value_to_set.isdigit():
                value_to_set += "MB"

            config["rules"]["max_file_size"] = value_to_set
            logging.info(f"Overriding max file size to: {value_to_set}")
        if format == OutputFormat.table:
            console.print(f"Scanning [cyan]{escape(str(path))}[/cyan]...")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("({task.completed} of {task.total} files)"),
            console=console,
            transient=True, # Hides the progress bar upon completion
        ) as progress:
            scanner = FileScanner(path, config=config)
            findings = scanner.scan(progress=progress)

        if not findings:
            if format == OutputFormat.table:
                console.print("No discouraged keywords found.", style="green")
            else:
                typer.echo("[]") # Print an empty JSON array
            return

        if format == OutputFormat.json:
            typer.echo(json.dumps(findings, indent=2))
        else: # Default to table
            console.print(f"Found {len(findings)} discouraged keyword(s):", style="bold red")
            table = Table(title="Scan Results")
            table.add_column("File", style="cyan")
            table.add_column("Line", style="magenta")
            table.add_column("Column", style="magenta")
            table.add_column("Keyword", style="green")
            table.add_column("Message", style="yellow")
            for finding in findings:
                table.add_row(
                    escape(finding["file"]),
                    str(finding["line"]),
                    str(finding["column"]),
                    escape(finding["keyword"]),
                    escape(finding["message"]),
                )
            console.print(table)

        if fail_on_finding:
            console.print("\nFailing build due to discouraged keywords.", style="bold red")
            raise typer.Exit(code=1)

@app.command()
def check(
    text: str = typer.Argument(..., help="The comment text to check."),
    keyword: Optional[List[str]] = typer.Option(
        None,
        "--keyword",
        "-k",
        help="Keyword to look for, replacing the configured set. Can be used multiple times.",
    ),
):
    """
    Check a single comment string and print the warning it would produce.

    Exits with code 1 when the comment contains a discouraged keyword.
    """
    with _debug_exception_handler():
        if keyword:
            keywords = list(keyword)
        else:
            config = load_config()
            validate_config(config)
            keywords = _keyword_block(config).get("keywords")

        finding = KeywordCommentRule(keywords).scan(text)
        if not finding.matched:
            console.print("No discouraged keyword found.", style="green")
            return

        template, data = warning_for(finding)
        typer.echo(template % data if data else template)
        raise typer.Exit(code=1)

@keywords_app.command("list")
def list_keywords():
    """
    Show the keywords the keyword rule currently looks for.
    """
    with _debug_exception_handler():
        config = load_config()
        validate_config(config)
        block = _keyword_block(config)

        config_path = find_config_file(Path.cwd())
        source = str(config_path) if config_path else "built-in defaults"

        table = Table(title="Discouraged Keywords")
        table.add_column("#", style="magenta")
        table.add_column("Keyword", style="cyan", no_wrap=True)
        for index, word in enumerate(block.get("keywords", []), 1):
            table.add_row(str(index), escape(word))

        console.print(table)
        console.print(f"Source: [yellow]{escape(source)}[/yellow]")
        if not block.get("enabled"):
            console.print("[yellow]The keyword rule is disabled in this configuration.[/yellow]")

@keywords_app.command("use")
def use_keywords(
    keywords: List[str] = typer.Argument(..., help="The keywords to look for, in order."),
):
    """
    Set the keywords to use for future scans.

    This updates the 'rules.detectors.keyword.keywords' key in your
    commentsniff.config.yaml file. If no config file is found, it will be
    created in the current directory.
    """
    with _debug_exception_handler():
        # Rejects blank entries before anything is written.
        KeywordCommentRule(keywords)

        config_path = find_config_file(Path.cwd())

        if not config_path:
            # If no config file exists, create one in the current directory.
            config_path = Path.cwd() / CONFIG_FILE_NAME
            console.print(f"No config file found. Creating a new one at [cyan]{escape(str(config_path))}[/cyan].")
            config_data = {}
        else:
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    config_data = yaml.safe_load(f) or {}
            except (IOError, yaml.YAMLError) as e:
                console.print(f"[bold red]Error:[/bold red] Could not read or parse config file at [cyan]{escape(str(config_path))}[/cyan]. Error: {escape(str(e))}", style="red")
                raise typer.Exit(code=1)

        block = _keyword_block(config_data)
        block["enabled"] = True
        block["keywords"] = list(keywords)

        # Write the updated config back to the file
        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            console.print(f"Keywords set to [cyan]{escape(', '.join(keywords))}[/cyan] in [yellow]{escape(str(config_path))}[/yellow].")
        except IOError as e:
            console.print(f"[bold red]Error:[/bold red] Could not write to config file at [cyan]{escape(str(config_path))}[/cyan]. Error: {escape(str(e))}", style="red")
            raise typer.Exit(code=1)
