"""CLI interface for stringlift."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tqdm import tqdm

from stringlift import __version__
from stringlift.config import PipelineConfig, Settings, load_settings
from stringlift.core import deobfuscate, locate_helpers, parse_javascript
from stringlift.core.diagnostics import AmbiguousPattern, ParseError, PatternNotFound
from stringlift.core.generator import save_output
from stringlift.core.parser import node_position, read_source
from stringlift.plugins import BeautifyPlugin, PluginChain

console = Console()

# Set by --debug
debug_logger: Optional[logging.Logger] = None
debug_log_file: Optional[Path] = None


def setup_debug_logger(log_path: Optional[Path] = None) -> logging.Logger:
    """Send every stringlift log record, DEBUG and up, to a file.

    The handler is attached to the package logger, so per-node events from
    the locator, rewriter and folder land in the same file as the CLI's own
    structured entries.
    """
    global debug_logger, debug_log_file

    if log_path is None:
        log_path = Path(f"stringlift_debug_{datetime.now():%Y%m%d_%H%M%S}.log")
    debug_log_file = log_path

    logger = logging.getLogger("stringlift")
    logger.setLevel(logging.DEBUG)
    logger.handlers = []

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)

    debug_logger = logger
    return logger


def debug_log(level: str, message: str, data: Optional[dict] = None):
    """Write to the debug log, appending ``data`` as indented JSON."""
    if debug_logger is None:
        return

    emit = getattr(debug_logger, level.lower(), debug_logger.info)
    if data:
        emit("%s\n%s", message, json.dumps(data, ensure_ascii=False, indent=2, default=str))
    else:
        emit(message)


def build_plugin_chain(settings: Settings) -> PluginChain:
    """Create the post-processing chain selected by settings."""
    return PluginChain([BeautifyPlugin()] if settings.beautify else [])


def default_output_path(file_path: Path, suffix: str) -> Path:
    return file_path.with_suffix(suffix)


def process_file(
    file_path: Path,
    config: PipelineConfig,
    output_path: Optional[Path] = None,
    plugins: Optional[PluginChain] = None,
    output_suffix: str = ".deobfuscated.js",
) -> dict:
    """Deobfuscate a single JavaScript file.

    Args:
        file_path: Path to JavaScript file
        config: Pipeline configuration
        output_path: Optional output path
        plugins: Optional post-processing chain
        output_suffix: Suffix used when no output path is given

    Returns:
        Processing statistics

    Raises:
        ParseError: The file is not UTF-8 text or not valid JavaScript
    """
    debug_log("info", f"Deobfuscating {file_path}")

    source_code = read_source(file_path)
    result = deobfuscate(source_code, config)

    code = result.code
    if plugins:
        context = plugins.run(code, file_path)
        code = context.source_code
        debug_log("debug", "Post-processing applied", {"plugins": context.applied})

    if output_path is None:
        output_path = default_output_path(file_path, output_suffix)
    save_output(code, output_path)

    stats = {
        "file": str(file_path),
        "output": str(output_path),
        **result.stats,
        "diagnostics": [d.to_dict() for d in result.diagnostics],
    }
    debug_log("info", "Processing complete", {"stats": stats})
    return stats


def process_directory(
    dir_path: Path,
    config: PipelineConfig,
    output_dir: Optional[Path] = None,
    plugins: Optional[PluginChain] = None,
    output_suffix: str = ".deobfuscated.js",
) -> list[dict]:
    """Deobfuscate all JavaScript files in a directory.

    Each file is processed independently; a file that cannot be decoded or
    parsed is reported and the batch continues.

    Args:
        dir_path: Path to directory
        config: Pipeline configuration
        output_dir: Optional output directory
        plugins: Optional post-processing chain
        output_suffix: Suffix used when no output directory is given

    Returns:
        List of processing statistics for each file
    """
    js_files = sorted(
        path for path in dir_path.rglob("*.js")
        if "node_modules" not in path.parts and not path.name.endswith(output_suffix)
    )
    console.print(f"[blue]Found {len(js_files)} JavaScript files in {dir_path}[/blue]")

    debug_log("info", f"Batch over {dir_path}", {"count": len(js_files), "files": js_files[:10]})

    results = []
    for js_file in tqdm(js_files, desc="Deobfuscating", unit="file"):
        rel_path = js_file.relative_to(dir_path)
        out_path = output_dir / rel_path if output_dir else None

        try:
            results.append(process_file(js_file, config, out_path, plugins, output_suffix))
        except ParseError as e:
            console.print(f"[red]Parse error in {js_file}: {escape(e.message)}[/red]")
            results.append({"file": str(js_file), "error": e.message})

    return results


def print_summary(results: list[dict]) -> None:
    table = Table(title="Processing Summary")
    table.add_column("File")
    table.add_column("Decoders")
    table.add_column("Rewritten")
    table.add_column("Skipped")
    table.add_column("Folded")
    table.add_column("Status")

    for r in results:
        status = "✓" if "error" not in r else "✗"
        table.add_row(
            r.get("file", "unknown"),
            str(r.get("decoders", 0)),
            str(r.get("rewritten", 0)),
            str(r.get("skipped", 0)),
            str(r.get("folded", 0)),
            status,
        )

    console.print(table)


def print_diagnostics(results: list[dict]) -> None:
    rows = [(r["file"], d) for r in results for d in r.get("diagnostics", [])]
    if not rows:
        return

    table = Table(title="Diagnostics")
    table.add_column("File")
    table.add_column("Kind", no_wrap=True)
    table.add_column("Location", no_wrap=True)
    table.add_column("Message")
    for file_name, d in rows:
        location = f"{d['line']}:{d['column']}" if d["line"] is not None else "-"
        table.add_row(escape(file_name), d["kind"], location, escape(d["message"]))
    console.print(table)


@click.group()
@click.version_option(version=__version__)
def main():
    """Stringlift - recover strings from string-array obfuscated JavaScript."""
    pass


@main.command("deobfuscate")
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", "output_path", type=click.Path(path_type=Path), help="Output file/directory path")
@click.option("--patterns", "patterns_file", type=click.Path(exists=True, path_type=Path), help="JSON file with structural-pattern tuning")
@click.option("--timeout", "timeout_ms", type=int, help="Sandbox time budget in milliseconds")
@click.option("--max-cycles", type=int, help="Upper bound on rewrite/fold cycles")
@click.option("--quote", type=click.Choice(["single", "double"]), help="Quote style for recovered strings")
@click.option("--rewrite-helpers", is_flag=True, default=None, help="Also rewrite calls inside the helper routines")
@click.option("--beautify", is_flag=True, default=None, help="Reformat output with jsbeautifier")
@click.option("--debug", is_flag=True, help="Enable debug logging to file")
@click.option("--debug-file", type=click.Path(path_type=Path), help="Debug log file path (default: stringlift_debug_TIMESTAMP.log)")
def deobfuscate_command(
    input_path: Path,
    output_path: Optional[Path],
    patterns_file: Optional[Path],
    timeout_ms: Optional[int],
    max_cycles: Optional[int],
    quote: Optional[str],
    rewrite_helpers: Optional[bool],
    beautify: Optional[bool],
    debug: bool,
    debug_file: Optional[Path],
):
    """Deobfuscate JavaScript code.

    INPUT_PATH can be a JavaScript file or directory containing JS files.
    Exits non-zero only when a file cannot be parsed.
    """
    if debug:
        setup_debug_logger(debug_file)
        console.print(f"[yellow]Debug logging enabled: {debug_log_file}[/yellow]")

    # Only override .env values if CLI args are explicitly provided
    settings = load_settings(
        patterns_file=patterns_file,
        timeout_ms=timeout_ms,
        max_cycles=max_cycles,
        quote_char={"single": "'", "double": '"'}.get(quote),
        rewrite_helpers=rewrite_helpers,
        beautify=beautify,
    )
    config = settings.pipeline_config()
    plugins = build_plugin_chain(settings)

    debug_log("info", "Configuration loaded", {
        "input_path": str(input_path),
        "output_path": str(output_path) if output_path else None,
        "config": config.model_dump(mode="json"),
        "beautify": settings.beautify,
    })

    if input_path.is_file():
        try:
            results = [process_file(input_path, config, output_path, plugins, settings.output_suffix)]
        except ParseError as e:
            console.print(f"[red]Parse error in {input_path}: {escape(e.message)}[/red]")
            results = [{"file": str(input_path), "error": e.message}]
    else:
        results = process_directory(input_path, config, output_path, plugins, settings.output_suffix)
    failed = any("error" in r for r in results)

    print_summary(results)
    print_diagnostics(results)

    if debug:
        console.print(f"\n[yellow]Debug log saved to: {debug_log_file}[/yellow]")

    if failed:
        raise SystemExit(1)


@main.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--patterns", "patterns_file", type=click.Path(exists=True, path_type=Path), help="JSON file with structural-pattern tuning")
def locate(input_path: Path, patterns_file: Optional[Path]):
    """Show the string-table, shuffle and decode helpers found in a file."""
    settings = load_settings(patterns_file=patterns_file)
    config = settings.pipeline_config()

    try:
        parse_result = parse_javascript(read_source(input_path))
    except ParseError as e:
        console.print(f"[red]Parse error: {escape(e.message)}[/red]")
        raise SystemExit(1)

    console.print(f"[blue]File:[/blue] {input_path}")
    try:
        located = locate_helpers(parse_result.program, config.patterns)
    except (PatternNotFound, AmbiguousPattern) as e:
        console.print(f"[yellow]{e.kind.value}:[/yellow] {escape(e.message)}")
        return

    table = Table(title="Located helpers")
    table.add_column("Role")
    table.add_column("Name")
    table.add_column("Line")

    def add(role: str, name: str, node) -> None:
        position = node_position(node)
        table.add_row(role, name, str(position.row + 1) if position else "-")

    add("string table", located.string_table_name, located.string_table_fn)
    if located.shuffle_unit is not None:
        add("shuffle", "(IIFE)", located.shuffle_unit)
    for fn in located.decode_fns:
        add("decoder", fn.id.name, fn)

    console.print(table)


if __name__ == "__main__":
    main()
