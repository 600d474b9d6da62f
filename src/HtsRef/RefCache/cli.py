# === NAVMAP v1 ===
# {
#   "module": "HtsRef.RefCache.cli",
#   "purpose": "Typer command line interface for resolving and inspecting references",
#   "sections": [
#     {"id": "context", "name": "CliContext", "anchor": "CTX", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "MAIN", "kind": "function"},
#     {"id": "commands", "name": "Commands", "anchor": "CMD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Typer CLI for the reference cache.

Commands:
    htsref fetch CHECKSUM [-o FILE]      resolve and write the reference bytes
    htsref locate CHECKSUM               show cache and local hits, no network
    htsref expand TEMPLATE CHECKSUM      expand a ``%s`` / ``%Ns`` template
    htsref search-path [RAW]             show tokenised search-path entries
    htsref config                        dump the effective settings as JSON

Data goes to stdout; status lines and errors go to stderr.  Exit codes are
``1`` when nothing provides the checksum or on other failures and ``2`` when
fetched content fails its MD5 check.

Example:
    >>> from HtsRef.RefCache.cli import app
    >>> if __name__ == "__main__":
    ...     app()
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .checksums import normalize_checksum
from .errors import IntegrityMismatchError, RefCacheError
from .logging_config import setup_logging
from .resolver import ReferenceResolver
from .search_path import FtpUrl, HttpUrl, LocalDirectory, SearchPathEntry, tokenize_search_path
from .settings import ResolverSettings, load_settings
from .templates import expand_path_template

EXIT_FAILURE = 1
EXIT_INTEGRITY = 2

_console = Console(stderr=True)


class CliContext:
    """Per-invocation state shared by commands.

    Attributes:
        settings: Effective resolver settings loaded from the environment.
        verbosity: ``-v`` count (1=INFO, 2=DEBUG).
        console: Rich console bound to stderr.
    """

    def __init__(self, settings: ResolverSettings, verbosity: int = 0) -> None:
        self.settings = settings
        self.verbosity = verbosity
        self.console = _console

    def log_level(self) -> str:
        if self.verbosity >= 2:
            return "DEBUG"
        if self.verbosity == 1:
            return "INFO"
        if "logging" in self.settings.model_fields_set:
            return self.settings.logging.level
        return "WARNING"

    def resolver(self) -> ReferenceResolver:
        return ReferenceResolver(self.settings)

    def fail(self, exc: RefCacheError) -> typer.Exit:
        self.console.print(f"[red]✗ {escape(str(exc))}[/red]")
        code = EXIT_INTEGRITY if isinstance(exc, IntegrityMismatchError) else EXIT_FAILURE
        return typer.Exit(code)


app = typer.Typer(
    name="htsref",
    help="Resolve MD5 checksums to reference sequences through a local cache",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"htsref {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    verbosity: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Reference cache tools.  Honours REF_PATH and REF_CACHE."""
    global _context

    try:
        settings = load_settings()
    except RefCacheError as exc:
        _console.print(f"[red]Error loading settings: {escape(str(exc))}[/red]")
        raise typer.Exit(EXIT_FAILURE)

    _context = CliContext(settings, verbosity=verbosity)
    setup_logging(settings.logging.model_copy(update={"level": _context.log_level()}))


@app.command()
def fetch(
    checksum: str = typer.Argument(..., help="MD5 checksum of the reference sequence"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write to FILE instead of stdout"
    ),
) -> None:
    """Resolve CHECKSUM and write the reference bytes."""
    ctx = get_context()
    try:
        trace = ctx.resolver().resolve_with_trace(checksum)
    except RefCacheError as exc:
        raise ctx.fail(exc)

    written = 0
    with trace.handle as handle:
        if output is None:
            stream = typer.get_binary_stream("stdout")
            for chunk in iter(lambda: handle.read(1 << 20), b""):
                stream.write(chunk)
                written += len(chunk)
            stream.flush()
        else:
            with output.open("wb") as out:
                for chunk in iter(lambda: handle.read(1 << 20), b""):
                    out.write(chunk)
                    written += len(chunk)
        provenance = handle.provenance
        name = handle.name
    ctx.console.print(f"{written} bytes from {provenance} ({escape(name)})")
    if trace.cache_error is not None:
        ctx.console.print(f"[yellow]cache not populated: {escape(str(trace.cache_error))}[/yellow]")


@app.command()
def locate(
    checksum: str = typer.Argument(..., help="MD5 checksum of the reference sequence"),
) -> None:
    """Show the cache entry and local search-path hit for CHECKSUM without network access.

    Exits with status 1 when neither is present.
    """
    ctx = get_context()
    try:
        key = normalize_checksum(checksum)
        resolver = ctx.resolver()
        cache_path = resolver.cache_path(key)
    except RefCacheError as exc:
        raise ctx.fail(exc)

    found = False
    if cache_path is None:
        typer.echo("cache: disabled")
    else:
        cached = cache_path.is_file()
        found = found or cached
        typer.echo(f"cache: {cache_path} ({'populated' if cached else 'missing'})")

    local = resolver.locator.find_local_path(key, resolver.entries)
    if local is None:
        typer.echo("local: none")
    else:
        found = True
        typer.echo(f"local: {local}")

    if not found:
        raise typer.Exit(EXIT_FAILURE)


@app.command()
def expand(
    template: str = typer.Argument(..., help="Template with %s or %Ns placeholders"),
    checksum: str = typer.Argument(..., help="Text substituted into the placeholders"),
) -> None:
    """Print TEMPLATE expanded against CHECKSUM."""
    typer.echo(expand_path_template(template, checksum))


def _describe(entry: SearchPathEntry) -> List[str]:
    if isinstance(entry, LocalDirectory):
        suffix = "" if entry.allow_compressed else " (no compressed variants)"
        return ["local", entry.path + suffix]
    if isinstance(entry, HttpUrl):
        return ["http", entry.template]
    if isinstance(entry, FtpUrl):
        return ["ftp", entry.template]
    return ["unknown", entry.raw]


@app.command("search-path")
def search_path(
    raw: Optional[str] = typer.Argument(
        None, help="Search path to tokenise; defaults to the configured one"
    ),
) -> None:
    """Print the search-path entries in lookup order."""
    ctx = get_context()
    entries = (
        ctx.settings.entries()
        if raw is None
        else tokenize_search_path(raw, ctx.settings.path_separator)
    )
    for index, entry in enumerate(entries, start=1):
        kind, value = _describe(entry)
        typer.echo(f"{index}\t{kind}\t{value}")
    if raw is None and not ctx.settings.explicit_search_path:
        ctx.console.print("REF_PATH is not set; using the default lookup service")


@app.command()
def config() -> None:
    """Dump the effective settings as JSON."""
    ctx = get_context()
    typer.echo(ctx.settings.model_dump_json(indent=2))


__all__ = ["app", "CliContext", "get_context", "main"]


if __name__ == "__main__":
    app()
