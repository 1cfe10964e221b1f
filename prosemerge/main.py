"""
Command line entry point for prosemerge.

This module handles:
- Command line argument parsing
- Logging configuration
- Settings and embedding provider setup
- The diff, patch, apply and merge commands
- Error reporting and exit codes
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, NoReturn, Optional

from prosemerge import __version__
from prosemerge.core.diff.unit_diff import UnitDiffEngine, summarize_diff
from prosemerge.core.errors import ProseMergeError
from prosemerge.core.merge.three_way import ThreeWayMergeEngine
from prosemerge.core.models import ConflictStrategy, EditOperation
from prosemerge.core.patch import (
    apply_patch,
    deserialize_patch,
    generate_patch,
    is_patch_compatible,
    serialize_patch,
)
from prosemerge.core.serialization import (
    application_result_to_dict,
    diff_result_to_dict,
    merge_result_to_dict,
)
from prosemerge.services.embeddings import (
    EmbeddingBackend,
    EmbeddingProvider,
    create_provider,
    set_default_provider,
)
from prosemerge.services.file_io import FileIOService
from prosemerge.services.hashing import HashingService
from prosemerge.services.settings import (
    ApplicationSettings,
    OutputFormat,
    SettingsManager,
)


# =============================================================================
# Constants
# =============================================================================

APP_NAME = "prosemerge"
APP_VERSION = __version__

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class CommandLineArgs:
    """Parsed command line arguments."""
    command: str = ""
    files: list[str] = field(default_factory=list)
    output_path: Optional[str] = None
    output_format: Optional[OutputFormat] = None
    strategy: Optional[ConflictStrategy] = None
    no_ml: bool = False
    config_file: Optional[str] = None
    log_level: str = "WARNING"
    log_file: Optional[str] = None


# =============================================================================
# Logging Setup
# =============================================================================

class LogFormatter(logging.Formatter):
    """Custom log formatter with colors for console."""

    COLORS = {
        logging.INFO: '\033[32m',      # Green
        logging.WARNING: '\033[33m',   # Yellow
        logging.ERROR: '\033[31m',     # Red
        logging.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if self.use_colors:
            color = self.COLORS.get(record.levelno, '')
            return f"{color}{formatted}{self.RESET}"

        return formatted


def setup_logging(level: str = "WARNING", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure application logging.

    Console output goes to stderr; stdout is reserved for command output.

    Args:
        level: Log level string
        log_file: Optional file path for logging

    Returns:
        Root logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(LogFormatter(use_colors=True))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(LogFormatter(use_colors=False))
        root_logger.addHandler(file_handler)

    # Reduce noise from third-party libraries
    for name in ('sentence_transformers', 'urllib3', 'pypdf'):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


# =============================================================================
# Command Line Parsing
# =============================================================================

class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors as ``Error: ...`` with status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def _global_options(suppress_defaults: bool) -> argparse.ArgumentParser:
    """
    Options accepted both before and after the command name.

    Copies attached to subcommands suppress their defaults so that a value
    given before the command is not overwritten.
    """
    parent = argparse.ArgumentParser(
        add_help=False,
        argument_default=argparse.SUPPRESS if suppress_defaults else None,
    )
    parent.add_argument(
        '--no-ml',
        action='store_true',
        help='Use character-frequency similarity instead of the ML model'
    )
    parent.add_argument(
        '-c', '--config',
        help='Configuration file path'
    )
    parent.add_argument(
        '--log-level',
        type=str.upper,
        choices=LOG_LEVELS,
        help='Log level (default: WARNING)'
    )
    parent.add_argument(
        '--log-file',
        help='Also write log output to this file'
    )
    return parent


def _output_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        '-o', '--output',
        help='Output file (default: stdout)'
    )
    parent.add_argument(
        '-f', '--format',
        choices=[f.value for f in OutputFormat],
        help='Output format (default: text)'
    )
    return parent


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = _ArgumentParser(
        prog=APP_NAME,
        description="Semantic diff, patch and three-way merge for prose",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[_global_options(suppress_defaults=False)],
        epilog="""
Examples:
  %(prog)s diff v1.md v2.md                  Show unit-level changes
  %(prog)s patch base.md mine.md -o my.patch Capture customizations
  %(prog)s apply base-v2.md my.patch         Replay them on a new base
  %(prog)s merge v1.md v2.md mine.md -s defer
        """
    )
    parser.add_argument(
        '-v', '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )

    global_options = _global_options(suppress_defaults=True)
    output_options = _output_options()
    subparsers = parser.add_subparsers(dest='command', metavar='<command>')

    diff_parser = subparsers.add_parser(
        'diff',
        parents=[global_options, output_options],
        help='Show the differences between two texts'
    )
    diff_parser.add_argument('base', help='Original text')
    diff_parser.add_argument('modified', help='Modified text')

    patch_parser = subparsers.add_parser(
        'patch',
        parents=[global_options, output_options],
        help='Generate a patch capturing modifications of a base text'
    )
    patch_parser.add_argument('base', help='Original text')
    patch_parser.add_argument('modified', help='Modified text')

    apply_parser = subparsers.add_parser(
        'apply',
        parents=[global_options, output_options],
        help='Apply a patch to a (new) base text'
    )
    apply_parser.add_argument('base', help='Base text to patch')
    apply_parser.add_argument('patch', help='Patch file')

    merge_parser = subparsers.add_parser(
        'merge',
        parents=[global_options, output_options],
        help='Three-way merge of an upgrade with a customization'
    )
    merge_parser.add_argument('ancestor', help='Original version (A)')
    merge_parser.add_argument('upgraded', help='Upgraded version (B)')
    merge_parser.add_argument('customized', help='Customized version (C)')
    merge_parser.add_argument(
        '-s', '--strategy',
        choices=[s.value for s in ConflictStrategy],
        help='Conflict strategy (default from settings: prefer-c)'
    )

    return parser


def parse_arguments(args: Optional[List[str]] = None) -> CommandLineArgs:
    """
    Parse command line arguments.

    Args:
        args: Arguments to parse (defaults to sys.argv)

    Returns:
        Parsed arguments; ``command`` is empty when none was given
    """
    parsed = build_parser().parse_args(args)

    result = CommandLineArgs()
    result.command = parsed.command or ""
    result.no_ml = parsed.no_ml
    result.config_file = parsed.config
    result.log_level = parsed.log_level or "WARNING"
    result.log_file = parsed.log_file

    if result.command:
        result.output_path = parsed.output
        if parsed.format:
            result.output_format = OutputFormat(parsed.format)

    if result.command in ('diff', 'patch'):
        result.files = [parsed.base, parsed.modified]
    elif result.command == 'apply':
        result.files = [parsed.base, parsed.patch]
    elif result.command == 'merge':
        result.files = [parsed.ancestor, parsed.upgraded, parsed.customized]
        if parsed.strategy:
            result.strategy = ConflictStrategy.from_string(parsed.strategy)

    return result


# =============================================================================
# Command Context
# =============================================================================

@dataclass
class CommandContext:
    """Everything a command needs besides its arguments."""
    args: CommandLineArgs
    settings: ApplicationSettings
    provider: EmbeddingProvider
    file_io: FileIOService = field(default_factory=FileIOService)

    @property
    def output_format(self) -> OutputFormat:
        return self.args.output_format or self.settings.output.format

    def read_text(self, path: str) -> str:
        """Read a document as text, raising on failure."""
        result = self.file_io.read_file(path)
        if not result.success:
            raise ProseMergeError(result.error)
        return result.content.content

    def write_output(self, content: str) -> None:
        """Write to the output file, or print to stdout."""
        if not self.args.output_path:
            print(content)
            return

        output = self.settings.output
        result = self.file_io.write_file(
            self.args.output_path,
            content,
            create_backup=output.create_backup,
            backup_extension=output.backup_extension,
        )
        if not result.success:
            raise ProseMergeError(result.error)
        print(f"Written to: {Path(self.args.output_path).resolve()}", file=sys.stderr)


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def create_command_context(args: CommandLineArgs) -> CommandContext:
    """Load settings and install the embedding provider for this run."""
    settings = SettingsManager(args.config_file).settings
    embeddings = settings.embeddings
    backend = EmbeddingBackend.CHAR_FREQUENCY if args.no_ml else embeddings.backend

    provider = create_provider(backend, embeddings.model_name, embeddings.cache_size)
    set_default_provider(provider)
    logger.info(f"Using embedding provider {provider.name}")

    return CommandContext(args=args, settings=settings, provider=provider)


# =============================================================================
# Commands
# =============================================================================

def run_diff(ctx: CommandContext) -> int:
    base_path, modified_path = ctx.args.files
    base = ctx.read_text(base_path)
    modified = ctx.read_text(modified_path)

    engine = UnitDiffEngine(
        ctx.settings.segmentation_options(),
        ctx.settings.alignment_options(),
        ctx.provider,
    )
    result = engine.diff(base, modified)

    if ctx.output_format == OutputFormat.JSON:
        ctx.write_output(_to_json(diff_result_to_dict(result)))
        return 0

    lines = [f"Diff: {base_path} → {modified_path}", f"Summary: {summarize_diff(result)}", ""]
    for edit in result.edits:
        if edit.operation == EditOperation.KEEP:
            lines.append(f"  {edit.old_content}")
        elif edit.operation == EditOperation.DELETE:
            lines.append(f"- {edit.old_content}")
        elif edit.operation == EditOperation.INSERT:
            lines.append(f"+ {edit.new_content}")
        elif edit.operation == EditOperation.REPLACE:
            lines.append(f"- {edit.old_content}")
            lines.append(f"+ {edit.new_content}")

    ctx.write_output("\n".join(lines))
    return 0


def run_patch(ctx: CommandContext) -> int:
    base_path, modified_path = ctx.args.files
    base = ctx.read_text(base_path)
    modified = ctx.read_text(modified_path)

    hashing = HashingService()
    metadata = {
        'generator': f"{APP_NAME} {APP_VERSION}",
        'baseDigest': hashing.hash_file(base_path).hash_hex,
        'modifiedDigest': hashing.hash_file(modified_path).hash_hex,
    }
    patch = generate_patch(base, modified, metadata=metadata, provider=ctx.provider)
    logger.info(f"Generated patch with {len(patch.edits)} edit(s)")

    ctx.write_output(serialize_patch(patch))
    return 0


def run_apply(ctx: CommandContext) -> int:
    base_path, patch_path = ctx.args.files
    base = ctx.read_text(base_path)
    patch = deserialize_patch(ctx.read_text(patch_path))

    result = apply_patch(base, patch)

    if ctx.output_format == OutputFormat.JSON:
        ctx.write_output(_to_json(application_result_to_dict(result)))
        return 0

    if not is_patch_compatible(patch, base):
        print("Note: patch was generated against a different base; edits were relocated",
              file=sys.stderr)
    if result.failed:
        print(f"Warning: {len(result.failed)} edit(s) failed to apply", file=sys.stderr)
    if result.adapted:
        print(f"Note: {len(result.adapted)} edit(s) were adapted", file=sys.stderr)

    ctx.write_output(result.result)
    return 0


def run_merge(ctx: CommandContext) -> int:
    ancestor_path, upgraded_path, customized_path = ctx.args.files
    ancestor = ctx.read_text(ancestor_path)
    upgraded = ctx.read_text(upgraded_path)
    customized = ctx.read_text(customized_path)

    options = ctx.settings.merge_options(ctx.args.strategy)
    result = ThreeWayMergeEngine(options, ctx.provider).merge(ancestor, upgraded, customized)

    if ctx.output_format == OutputFormat.JSON:
        ctx.write_output(_to_json(merge_result_to_dict(result)))
        return 0

    stats = result.stats
    print("Merge complete:", file=sys.stderr)
    print(f"  Unchanged: {stats.unchanged}", file=sys.stderr)
    print(f"  Upgraded:  {stats.upgraded}", file=sys.stderr)
    print(f"  Preserved: {stats.preserved}", file=sys.stderr)
    if stats.conflicts > 0:
        print(f"  Conflicts: {stats.conflicts} ({stats.auto_resolved} auto-resolved)",
              file=sys.stderr)
    if result.conflicts:
        print(f"\nUnresolved conflicts: {len(result.conflicts)}", file=sys.stderr)
        print("Conflict markers have been inserted in the output.", file=sys.stderr)

    ctx.write_output(result.merged)
    return 0


COMMANDS = {
    'diff': run_diff,
    'patch': run_patch,
    'apply': run_apply,
    'merge': run_merge,
}


# =============================================================================
# Main Function
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.

    Args:
        argv: Arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success)
    """
    args = parse_arguments(argv)

    if not args.command:
        build_parser().print_help()
        return 1

    log_file = Path(args.log_file) if args.log_file else None
    setup_logging(args.log_level, log_file)
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}: {args.command}")

    try:
        ctx = create_command_context(args)
        return COMMANDS[args.command](ctx)
    except ProseMergeError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.critical(f"Unexpected error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == '__main__':
    sys.exit(main())
