"""PDH error-code definitions generator for Go.

Runs the C preprocessor over <pdhmsg.h>, collects every PDH_* macro name from
the macro-definition trace and renders them into a cgo godefs input file.
Numeric values are left to cgo; only names are emitted here.

Usage:
    python mkpdh_defs.py --output defs_pdh_windows.go
"""

import argparse
import io
import re
import subprocess
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

DEFAULT_OUTPUT = "defs_pdh_windows.go"

INCLUDES = """
#include <pdhmsg.h>
"""

PREPROCESSOR_COMMAND: tuple[str, ...] = ("gcc", "-E", "-dD", "-")
FORMATTER_COMMAND: tuple[str, ...] = ("gofmt", "-w")

PDH_DEFINE_RE = re.compile(r"^#define (PDH_\w+)", re.ASCII)
_GO_IDENT_RE = re.compile(r"^[A-Za-z_]\w*$", re.ASCII)


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    output: Path


VALID_ERROR_CODES = {
    "EMPTY_OUTPUT",
    "OUTPUT_IS_DIRECTORY",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate PDH error-code definitions for Go"
    )
    parser.add_argument(
        "--output", type=str, default=DEFAULT_OUTPUT, help="output file"
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    output = args.output
    if not output:
        raise ConfigError(
            "EMPTY_OUTPUT",
            "--output must name a file.",
            f"Omit --output to use the default ({DEFAULT_OUTPUT}).",
        )
    output = Path(output)
    try:
        is_dir = output.is_dir()
    except OSError:
        # Unreadable or overlong paths are reported by write_defs.
        is_dir = False
    if is_dir:
        raise ConfigError(
            "OUTPUT_IS_DIRECTORY",
            f"--output points to a directory: {output}",
            f"Pass a file path, e.g. {output / DEFAULT_OUTPUT}",
        )
    return GenerateConfig(output=output)


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    args = parse_args(argv)
    return validate_config(args)


# ===--- Pipeline errors ---=== #

PIPELINE_STAGES: tuple[str, ...] = ("expand", "scan", "render", "write", "format")


class GenerateError(Exception):
    """Unrecoverable failure of one pipeline stage.

    Attributes:
        stage: One of PIPELINE_STAGES, naming the step that failed.
        message: Short operator-facing diagnostic.
        suggestion: Optional hint printed after the diagnostic.
    """

    def __init__(self, stage: str, message: str, suggestion: str | None = None):
        if stage not in PIPELINE_STAGES:
            raise ValueError(f"Unknown pipeline stage: {stage}")
        super().__init__(message)
        self.stage = stage
        self.message = message
        self.suggestion = suggestion


class ToolInvocationError(GenerateError):
    """External tool (preprocessor or formatter) missing or failed."""


class StreamReadError(GenerateError):
    """Preprocessor output could not be read."""


class FileWriteError(GenerateError):
    """Destination file could not be created or written."""


class TemplateError(GenerateError):
    """Rendering defect; scanner output never triggers this."""


# ===--- External tools ---=== #


def _last_stderr_line(stderr: bytes | str | None) -> str:
    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    lines = [line for line in stderr.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def _run_tool(
    stage: str, command: list[str], stdin: bytes | None = None
) -> subprocess.CompletedProcess[bytes]:
    display = " ".join(command)
    try:
        return subprocess.run(
            command,
            input=stdin,
            check=True,
            capture_output=True,
        )
    except FileNotFoundError as err:
        raise ToolInvocationError(
            stage,
            f"{command[0]} not found",
            f"Install {command[0]} and make sure it is on PATH.",
        ) from err
    except subprocess.CalledProcessError as err:
        detail = _last_stderr_line(err.stderr)
        message = f"{display} exited with status {err.returncode}"
        if detail:
            message = f"{message}: {detail}"
        raise ToolInvocationError(stage, message) from err
    except OSError as err:
        raise ToolInvocationError(stage, f"could not run {display}: {err}") from err


def expand_macros(include_text: str = INCLUDES) -> bytes:
    """Preprocess include_text and return the raw stdout of the preprocessor.

    The -dD flag keeps every #define in the output next to the expanded text,
    which is what scan_definitions looks for.

    Raises:
        ToolInvocationError: Preprocessor missing, not startable, or exited
            non-zero.
    """
    result = _run_tool(
        "expand", list(PREPROCESSOR_COMMAND), stdin=include_text.encode("utf-8")
    )
    return result.stdout


def format_in_place(path: Path) -> None:
    """Rewrite path with gofmt.

    Raises:
        ToolInvocationError: gofmt missing or exited non-zero. The file is
            left as written.
    """
    _run_tool("format", [*FORMATTER_COMMAND, str(path)])


# ===--- Definition scanning ---=== #


def scan_definitions(lines: Iterable[str]) -> list[str]:
    """Return every PDH_* macro name defined in lines, in stream order.

    Duplicates are kept. Lines that do not match are skipped.

    Raises:
        StreamReadError: The underlying stream failed while being read.
    """
    names: list[str] = []
    try:
        for line in lines:
            match = PDH_DEFINE_RE.match(line)
            if match:
                names.append(match.group(1))
    except OSError as err:
        raise StreamReadError("scan", f"reading preprocessor output: {err}") from err
    return names


def read_definitions(raw: bytes) -> list[str]:
    # Latin-1 maps every byte, so arbitrary header bytes never fail to decode.
    stream = io.TextIOWrapper(io.BytesIO(raw), encoding="latin-1", newline=None)
    with stream:
        return scan_definitions(stream)


def find_duplicate_names(names: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for name in names:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    return tuple(duplicates)


# ===--- Template rendering ---=== #


@dataclass(frozen=True)
class TemplateParams:
    """Everything the defs template consumes.

    Attributes:
        errors: PDH error macro names in declaration order. May be empty and
            may contain duplicates; both are rendered as given.
    """

    errors: tuple[str, ...]


REGENERATE_COMMAND = "python mkpdh_defs.py"

COUNTER_FORMAT_LINES: tuple[str, ...] = (
    "type PdhCounterFormat uint32",
    "",
    "// PDH Counter Formats",
    "const (",
    "\t// PdhFmtDouble returns data as a double-precision floating point real.",
    "\tPdhFmtDouble PdhCounterFormat = C.PDH_FMT_DOUBLE",
    "\t// PdhFmtLarge returns data as a 64-bit integer.",
    "\tPdhFmtLarge PdhCounterFormat = C.PDH_FMT_LARGE",
    "\t// PdhFmtLong returns data as a long integer.",
    "\tPdhFmtLong PdhCounterFormat = C.PDH_FMT_LONG",
    "",
    "\t// Use bitwise operators to combine these values with the counter type to scale the value.",
    "",
    "\t// Do not apply the counter's default scaling factor.",
    "\tPdhFmtNoScale PdhCounterFormat = C.PDH_FMT_NOSCALE",
    "\t// Counter values greater than 100 (for example, counter values measuring",
    "\t// the processor load on multiprocessor computers) will not be reset to 100.",
    "\t// The default behavior is that counter values are capped at a value of 100.",
    "\tPdhFmtNoCap100 PdhCounterFormat = C.PDH_FMT_NOCAP100",
    "\t// Multiply the actual value by 1,000.",
    "\tPdhFmtMultiply1000 PdhCounterFormat = C.PDH_FMT_1000",
    ")",
)
"""Hand-authored counter format flags. Not derived from the scanned names."""


def format_file_header() -> list[str]:
    """Return the generated-file preamble up to and including import "C".

    Output format:
        // python mkpdh_defs.py
        // MACHINE GENERATED BY THE ABOVE COMMAND; DO NOT EDIT

        // +build ignore

        package pdh

        /*
        #include <pdh.h>
        #include <pdhmsg.h>
        #cgo LDFLAGS: -lpdh
        */
        import "C"
    """
    return [
        f"// {REGENERATE_COMMAND}",
        "// MACHINE GENERATED BY THE ABOVE COMMAND; DO NOT EDIT",
        "",
        "// +build ignore",
        "",
        "package pdh",
        "",
        "/*",
        "#include <pdh.h>",
        "#include <pdhmsg.h>",
        "#cgo LDFLAGS: -lpdh",
        "*/",
        'import "C"',
    ]


def _check_identifiers(errors: tuple[str, ...]) -> None:
    for name in errors:
        if not isinstance(name, str) or not _GO_IDENT_RE.match(name):
            raise TemplateError("render", f"not a valid Go identifier: {name!r}")


def format_error_constants(errors: tuple[str, ...]) -> list[str]:
    lines = ["// PDH Error Codes", "const ("]
    lines.extend(f"\t{name} PdhErrno = C.{name}" for name in errors)
    lines.append(")")
    return lines


def format_error_set(errors: tuple[str, ...]) -> list[str]:
    lines = ["var pdhErrors = map[PdhErrno]struct{}{"]
    lines.extend(f"\t{name}: struct{{}}{{}}," for name in errors)
    lines.append("}")
    return lines


def render_defs(params: TemplateParams) -> str:
    """Render the complete Go source for params.

    File structure:
        <header + cgo preamble>     <- format_file_header output
                                    <- blank line
        type PdhErrno uintptr
                                    <- blank line
        <error constants>           <- format_error_constants output
                                    <- blank line
        <membership map>            <- format_error_set output
                                    <- blank line
        <counter formats>           <- COUNTER_FORMAT_LINES
                                    <- trailing newline

    Pure: identical params always produce identical text.

    Raises:
        TemplateError: An entry in params.errors is not a Go identifier.
    """
    errors = tuple(params.errors)
    _check_identifiers(errors)

    parts: list[str] = list(format_file_header())
    parts.append("")
    parts.append("type PdhErrno uintptr")
    parts.append("")
    parts.extend(format_error_constants(errors))
    parts.append("")
    parts.extend(format_error_set(errors))
    parts.append("")
    parts.extend(COUNTER_FORMAT_LINES)
    return "\n".join(parts) + "\n"


# ===--- Writer I/O ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing the generated file.

    Attributes:
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    path: Path
    line_count: int
    byte_count: int


def write_defs(path: Path, content: str) -> FileWriteResult:
    """Create or truncate path and write content to it.

    The handle is closed before this returns, on success and on failure.
    Parent directories are not created.

    Raises:
        FileWriteError: The file could not be opened or written.
    """
    path = Path(path)
    try:
        path.write_text(content, encoding="utf-8", newline="\n")
    except OSError as err:
        raise FileWriteError("write", f"cannot write {path}: {err}") from err
    return FileWriteResult(
        path=path.resolve(),
        line_count=content.count("\n"),
        byte_count=len(content.encode("utf-8")),
    )


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    """Immutable data for the post-generation console report.

    Attributes:
        output: Destination path as given on the command line.
        definition_count: Number of scanned names, duplicates included.
        duplicates: Names declared more than once, first repeat order.
        write_result: What write_defs reported for the unformatted file.
    """

    output: str
    definition_count: int
    duplicates: tuple[str, ...]
    write_result: FileWriteResult


def build_generation_summary(
    config: GenerateConfig, errors: list[str], write_result: FileWriteResult
) -> GenerationSummary:
    return GenerationSummary(
        output=str(config.output),
        definition_count=len(errors),
        duplicates=find_duplicate_names(errors),
        write_result=write_result,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    lines: list[str] = []
    lines.append("PDH definitions generated:")
    lines.append("")
    lines.append(f"  Output:       {summary.output}")
    lines.append(f"  Definitions:  {summary.definition_count}")
    lines.append(
        f"  Written:      {summary.write_result.line_count:,} lines, "
        f"{summary.write_result.byte_count:,} bytes"
    )
    if summary.duplicates:
        lines.append(f"  Duplicates:   {', '.join(summary.duplicates)}")
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Main generation ---=== #


def run_generate(
    config: GenerateConfig,
    expand: Callable[[str], bytes] | None = None,
    format_file: Callable[[Path], None] | None = None,
) -> GenerationSummary:
    """Execute expand -> scan -> render -> write -> format for config.

    expand and format_file default to expand_macros and format_in_place.
    Each stage finishes before the next one starts; the first failure ends
    the run.

    Raises:
        GenerateError: Any stage failed. Files already written are kept.
    """
    expander = expand_macros if expand is None else expand
    formatter = format_in_place if format_file is None else format_file

    print(f"Expanding: {' '.join(PREPROCESSOR_COMMAND)}")
    raw = expander(INCLUDES)

    errors = read_definitions(raw)
    print(f"  Scanned: {len(errors)} definitions")

    content = render_defs(TemplateParams(errors=tuple(errors)))
    rendered_lines = content.count("\n")
    print(f"  Rendered: {rendered_lines} lines")

    result = write_defs(config.output, content)
    print(f"  Written: {result.line_count} lines to {config.output}")

    formatter(config.output)
    print(f"  Formatted: {' '.join(FORMATTER_COMMAND)} {config.output}")

    summary = build_generation_summary(config, errors, result)
    print_generation_summary(summary)
    return summary


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err

    try:
        run_generate(config)
    except GenerateError as err:
        print(f"Error [{err.stage}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
