"""TypeScript definitions generator for Go structs.

Scans Go model files for exported struct types, synthesizes a short Go driver
program that registers them with typescriptify-golang-structs, and runs it
with `go run` so the library writes the TypeScript file.

Usage:
    tscriptify -package=github.com/acme/app/models -target=web/models.ts models.go Extra
"""

import argparse
import json
import os
import posixpath
import subprocess
import sys
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path, PurePath

import tree_sitter_go
from tree_sitter import Language, Node, Parser

GO_COMMAND: tuple[str, ...] = ("go", "run")
GO_FILE_SUFFIX = ".go"
TYPESCRIPTIFY_IMPORT = "github.com/tkrajina/typescriptify-golang-structs/typescriptify"
DRIVER_PREFIX = "typescriptify_"
ALIAS_PREFIX = "m"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    models_package: str
    target_file: str
    inputs: tuple[str, ...]
    extra_imports: Path | None = None
    extra_commands: Path | None = None
    backup_dir: str = ""
    interface: bool = False
    custom_imports: tuple[str, ...] = ()
    verbose: bool = False


VALID_ERROR_CODES = {
    "MISSING_PACKAGE",
    "MISSING_TARGET",
}


class ValidationError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


class ParseError(Exception):
    def __init__(self, filename: str, message: str):
        super().__init__(f"{filename}: {message}")
        self.filename = filename
        self.message = message


class ExecutionError(Exception):
    def __init__(self, returncode: int, command: tuple[str, ...], output: str):
        super().__init__(f"{' '.join(command)} exited with status {returncode}")
        self.returncode = returncode
        self.command = command
        self.output = output


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tscriptify",
        description="Generate TypeScript definitions from Go structs",
    )

    parser.add_argument(
        "-package",
        "--package",
        dest="package",
        type=str,
        default=None,
        help="Path of the package with models",
    )
    parser.add_argument(
        "-target",
        "--target",
        dest="target",
        type=str,
        default=None,
        help="Target typescript file",
    )
    parser.add_argument(
        "-extra-imports",
        "--extra-imports",
        dest="extra_imports",
        type=Path,
        default=None,
        help="Filename containing extra imports to include in the generated file",
    )
    parser.add_argument(
        "-extra-commands",
        "--extra-commands",
        dest="extra_commands",
        type=Path,
        default=None,
        help="Filename containing extra content to include in the generated file",
    )
    parser.add_argument(
        "-backup",
        "--backup",
        dest="backup",
        type=str,
        default="",
        help="Directory where backup files are saved",
    )
    parser.add_argument(
        "-interface",
        "--interface",
        dest="interface",
        action="store_true",
        default=False,
        help="Create interfaces (not classes)",
    )
    parser.add_argument(
        "-import",
        "--import",
        dest="imports",
        action="append",
        default=None,
        help="Typescript import for your custom type, repeat this option for each import needed",
    )
    parser.add_argument(
        "-verbose",
        "--verbose",
        dest="verbose",
        action="store_true",
        default=False,
        help="Verbose logs",
    )
    parser.add_argument("inputs", nargs="*", help="Struct names and/or .go files")

    return parser


BOOL_FLAGS = frozenset({"interface", "verbose"})
# Values accepted by Go's strconv.ParseBool.
GO_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
GO_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def expand_bool_flags(
    argv: list[str], parser: argparse.ArgumentParser
) -> list[str]:
    """Rewrite Go-style `-interface=true` into argparse's bare switch form.

    `=false` drops the flag. Anything after `--` is left alone.
    """
    expanded: list[str] = []
    for position, arg in enumerate(argv):
        if arg == "--":
            expanded.extend(argv[position:])
            break
        name = arg[2:] if arg.startswith("--") else arg[1:]
        flag, sep, value = name.partition("=")
        if not arg.startswith("-") or not sep or flag not in BOOL_FLAGS:
            expanded.append(arg)
            continue
        if value in GO_TRUE_VALUES:
            expanded.append(f"--{flag}")
        elif value not in GO_FALSE_VALUES:
            parser.error(f'invalid boolean value "{value}" for -{flag}')
    return expanded


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    if argv is None:
        argv = sys.argv[1:]
    return parser.parse_args(expand_bool_flags(list(argv), parser))


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    if not args.package:
        raise ValidationError(
            "MISSING_PACKAGE",
            "No package given",
            "Pass the Go import path of the models: -package github.com/you/app/models",
        )
    if not args.target:
        raise ValidationError(
            "MISSING_TARGET",
            "No target file",
            "Pass the TypeScript output file: -target web/models.ts",
        )

    return GenerateConfig(
        models_package=args.package,
        target_file=args.target,
        inputs=tuple(args.inputs or ()),
        extra_imports=args.extra_imports,
        extra_commands=args.extra_commands,
        backup_dir=args.backup or "",
        interface=bool(args.interface),
        custom_imports=tuple(args.imports or ()),
        verbose=bool(args.verbose),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    return validate_config(parse_args(argv))


# ===--- S1 Declaration scanner ---=== #

GO_LANGUAGE = Language(tree_sitter_go.language())

IDENTIFIER_NODE_TYPES = frozenset(
    {
        "identifier",
        "type_identifier",
        "field_identifier",
        "package_identifier",
    }
)
STRUCT_NODE_TYPE = "struct_type"
# Dropped by the Go parser unless comments are requested.
IGNORED_NODE_TYPES = frozenset({"comment"})
TOP_LEVEL_DECLARATION_TYPES = frozenset(
    {
        "function_declaration",
        "method_declaration",
        "type_declaration",
        "var_declaration",
        "const_declaration",
    }
)


def is_exported(name: str) -> bool:
    return name[:1].isupper()


def _first_error_node(root: Node) -> Node | None:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return None


def parse_go_source(source: bytes, filename: str = "<source>") -> Node:
    """Parse Go source into a syntax tree and return its root node.

    Raises:
        ParseError: If the source is not syntactically valid Go. The message
            carries the 1-based line and column of the first error node.
    """
    tree = Parser(GO_LANGUAGE).parse(source)
    root = tree.root_node
    if root.has_error:
        bad = _first_error_node(root)
        if bad is None:
            raise ParseError(filename, "syntax error")
        row, column = bad.start_point
        detail = f"missing {bad.type}" if bad.is_missing else "syntax error"
        raise ParseError(filename, f"{row + 1}:{column + 1}: {detail}")
    check_file_layout(root, filename)
    return root


def check_file_layout(root: Node, filename: str) -> None:
    """Enforce the source-file shape tree-sitter-go tolerates but Go does not.

    A file is one package clause, then imports, then top-level declarations.
    Statements outside a function body are rejected.

    Raises:
        ParseError: At the first top-level node out of place.
    """
    seen_package = False
    seen_declaration = False
    for node in root.named_children:
        kind = node.type
        if kind in IGNORED_NODE_TYPES:
            continue
        row, column = node.start_point
        where = f"{row + 1}:{column + 1}"
        if not seen_package:
            if kind != "package_clause":
                raise ParseError(filename, f"{where}: expected 'package', found {kind}")
            seen_package = True
            continue
        if kind == "package_clause":
            raise ParseError(filename, f"{where}: duplicate package clause")
        if kind == "import_declaration":
            if seen_declaration:
                raise ParseError(
                    filename, f"{where}: imports must appear before other declarations"
                )
            continue
        if kind not in TOP_LEVEL_DECLARATION_TYPES:
            raise ParseError(
                filename, f"{where}: non-declaration statement outside function body"
            )
        seen_declaration = True

    if not seen_package:
        raise ParseError(filename, "1:1: expected 'package', found EOF")


def collect_struct_names(root: Node) -> tuple[str, ...]:
    """Return exported struct names in the order they appear in the tree.

    Pre-order walk over named nodes carrying one pending name: an exported
    identifier becomes the pending name, a struct type emits it, and any
    other node clears it. A struct is attributed only to the identifier
    visited immediately before it, so `type Box[T any] struct{...}` is not
    reported (the type parameter list clears the name).
    """
    names: list[str] = []
    pending: str | None = None
    stack = [root]
    while stack:
        node = stack.pop()
        kind = node.type
        if kind in IGNORED_NODE_TYPES:
            continue
        if kind in IDENTIFIER_NODE_TYPES:
            text = node.text.decode("utf-8")
            pending = text if is_exported(text) else None
        elif kind == STRUCT_NODE_TYPE:
            if pending is not None:
                names.append(pending)
            pending = None
        else:
            pending = None
        stack.extend(reversed(node.named_children))
    return tuple(names)


def scan_go_source(source: bytes, filename: str = "<source>") -> tuple[str, ...]:
    return collect_struct_names(parse_go_source(source, filename))


def scan_go_file(path: str | Path) -> tuple[str, ...]:
    """Scan one Go file for exported struct declarations.

    Raises:
        ParseError: The file cannot be read or is not valid Go.
    """
    filename = str(path)
    try:
        source = Path(path).read_bytes()
    except OSError as err:
        raise ParseError(filename, str(err)) from err
    return scan_go_source(source, filename)


# ===--- S2 Package aliases ---=== #


@dataclass(frozen=True)
class PackageAlias:
    index: int
    import_path: str

    @property
    def name(self) -> str:
        return f"{ALIAS_PREFIX}{self.index}"


class PackageAliasResolver:
    """Assigns one `m<index>` alias per distinct import path.

    Aliases are numbered in first-seen order. One resolver is created per
    run and threaded through the reference builder.
    """

    def __init__(self, models_package: str):
        self.models_package = models_package
        self._aliases: dict[str, PackageAlias] = {}

    def import_path_for(self, file_path: str | Path) -> str:
        parts = (self.models_package, PurePath(file_path).as_posix())
        joined = posixpath.normpath("/".join(part for part in parts if part))
        return posixpath.dirname(joined) or "."

    def resolve(self, file_path: str | Path) -> PackageAlias:
        import_path = self.import_path_for(file_path)
        alias = self._aliases.get(import_path)
        if alias is None:
            alias = PackageAlias(index=len(self._aliases), import_path=import_path)
            self._aliases[import_path] = alias
        return alias

    @property
    def aliases(self) -> tuple[PackageAlias, ...]:
        return tuple(self._aliases.values())


# ===--- S3 Struct references ---=== #


@dataclass(frozen=True)
class StructReference:
    name: str
    alias: PackageAlias | None = None

    @property
    def qualified_name(self) -> str:
        if self.alias is None:
            return self.name
        return f"{self.alias.name}.{self.name}"


def is_go_file(entry: str) -> bool:
    return entry.endswith(GO_FILE_SUFFIX)


def accept_struct_name(name: str) -> bool:
    if not name or name.startswith("."):
        return False
    if any(sep in name for sep in (os.sep, os.altsep) if sep):
        return False
    return is_exported(name)


def build_struct_references(
    inputs: Iterable[str],
    resolver: PackageAliasResolver,
    scan: Callable[[str], tuple[str, ...]] = scan_go_file,
    verbose: bool = False,
) -> tuple[StructReference, ...]:
    """Turn positional inputs into struct references, in input order.

    Entries ending in `.go` are scanned and each discovered name is qualified
    with the alias of the file's directory. Any other entry is a direct type
    name and stays unqualified. Both kinds go through accept_struct_name.

    The alias is only allocated once a file contributes at least one
    reference, so the driver never imports a package it does not use.

    Args:
        inputs: Positional CLI arguments.
        resolver: Alias resolver for this run.
        scan: File scanner, scan_go_file unless overridden.
        verbose: Print one progress line per scanned file.

    Returns:
        References in the order their inputs were supplied. Duplicates are
        kept.

    Raises:
        ParseError: Propagated from scan.
    """
    references: list[StructReference] = []
    for entry in inputs:
        if not is_go_file(entry):
            name = entry.strip()
            if accept_struct_name(name):
                references.append(StructReference(name=name))
            continue

        names = [name for name in scan(entry) if accept_struct_name(name)]
        if verbose:
            print(f"Scanning: {entry} ({len(names)} structs)")
        if not names:
            continue
        alias = resolver.resolve(entry)
        references.extend(StructReference(name=name, alias=alias) for name in names)
    return tuple(references)


# ===--- S4 Driver synthesis ---=== #


@dataclass(frozen=True)
class DriverConfig:
    """Everything the driver program template needs, resolved up front.

    Attributes:
        target_file: Path handed to ConvertToFile.
        interface: Value of CreateInterface.
        init_params: Ordered (field, Go literal) pairs assigned on the
            converter after construction, e.g. ("BackupDir", '""').
        custom_imports: TypeScript import lines, one AddImport each.
        aliases: Model packages to import, in alias index order.
        structs: References registered with Add, in order.
        extra_imports: Raw text spliced into the import block.
        extra_commands: Raw text spliced before ConvertToFile.
    """

    target_file: str
    interface: bool
    init_params: tuple[tuple[str, str], ...]
    custom_imports: tuple[str, ...]
    aliases: tuple[PackageAlias, ...]
    structs: tuple[StructReference, ...]
    extra_imports: str = ""
    extra_commands: str = ""


ENUM_HELPER_LINES: tuple[str, ...] = (
    "type enum[T any] struct {",
    "\tValue  T",
    "\tTSName string",
    "}",
    "",
    "func stringEnum[T ~string](xs []T) []enum[T] {",
    "\tout := make([]enum[T], 0, len(xs))",
    "\tfor _, x := range xs {",
    "\t\tout = append(out, enum[T]{",
    "\t\t\tValue:  x,",
    "\t\t\tTSName: string(x),",
    "\t\t})",
    "\t}",
    "\treturn out",
    "}",
)
"""Helpers available to extra commands, e.g. t.AddEnum(stringEnum(allColors))."""


def go_quote(value: str) -> str:
    """Return value as a Go interpreted string literal."""
    return json.dumps(value, ensure_ascii=False)


def read_injection(path: Path | None) -> str:
    """Return the text of an extra-imports/extra-commands file, "" for None.

    Raises:
        OSError: The file is unreadable or not valid UTF-8.
    """
    if path is None:
        return ""
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as err:
        raise OSError(f"{path}: {err}") from err


def build_init_params(config: GenerateConfig) -> tuple[tuple[str, str], ...]:
    return (("BackupDir", go_quote(config.backup_dir)),)


def build_driver_config(
    config: GenerateConfig,
    aliases: tuple[PackageAlias, ...],
    structs: tuple[StructReference, ...],
    extra_imports: str = "",
    extra_commands: str = "",
) -> DriverConfig:
    return DriverConfig(
        target_file=config.target_file,
        interface=config.interface,
        init_params=build_init_params(config),
        custom_imports=config.custom_imports,
        aliases=tuple(sorted(aliases, key=lambda alias: alias.index)),
        structs=structs,
        extra_imports=extra_imports,
        extra_commands=extra_commands,
    )


def format_import_block(
    aliases: tuple[PackageAlias, ...], extra_imports: str = ""
) -> list[str]:
    """Return the driver's import block lines.

    Output format (tab indented):
        import (
            m0 "github.com/acme/app/models"
            "github.com/tkrajina/typescriptify-golang-structs/typescriptify"
        <extra imports, verbatim>
        )
    """
    lines = ["import ("]
    for alias in aliases:
        lines.append(f"\t{alias.name} {go_quote(alias.import_path)}")
    lines.append(f"\t{go_quote(TYPESCRIPTIFY_IMPORT)}")
    if extra_imports:
        lines.append(extra_imports.rstrip("\n"))
    lines.append(")")
    return lines


def format_main_body(driver: DriverConfig) -> list[str]:
    lines = [
        "func main() {",
        "\tt := typescriptify.New()",
        f"\tt.CreateInterface = {'true' if driver.interface else 'false'}",
    ]
    for key, value in driver.init_params:
        lines.append(f"\tt.{key} = {value}")
    for struct in driver.structs:
        lines.append(f"\tt.Add({struct.qualified_name}{{}})")
    for custom_import in driver.custom_imports:
        lines.append(f"\tt.AddImport({go_quote(custom_import)})")
    if driver.extra_commands:
        lines.append(driver.extra_commands.rstrip("\n"))
    lines.extend(
        [
            f"\terr := t.ConvertToFile({go_quote(driver.target_file)})",
            "\tif err != nil {",
            "\t\tpanic(err.Error())",
            "\t}",
            "}",
        ]
    )
    return lines


def assemble_driver_source(driver: DriverConfig) -> str:
    """Assemble the complete Go driver program for a DriverConfig.

    File structure:
        package main
                                    <- blank line
        <import block>              <- format_import_block output
                                    <- blank line
        <func main>                 <- format_main_body output
                                    <- blank line
        <enum helpers>              <- ENUM_HELPER_LINES
                                    <- trailing newline

    Pure: no I/O and no validation. Values that are not valid Go (for
    example a struct name the models package does not export) surface as
    compile errors when the driver runs.
    """
    parts: list[str] = ["package main", ""]
    parts.extend(format_import_block(driver.aliases, driver.extra_imports))
    parts.append("")
    parts.extend(format_main_body(driver))
    parts.append("")
    parts.extend(ENUM_HELPER_LINES)
    return "\n".join(parts) + "\n"


# ===--- S5 Driver execution ---=== #

DUMP_SEPARATOR = "-" * 100


def write_driver(source: str, directory: str | Path | None = None) -> Path:
    """Persist driver source into a fresh, uniquely named .go file.

    The handle is closed when the with block exits, on success or error.
    On success the file is left on disk for the caller to run and remove;
    if the write fails the partial file is removed before re-raising.

    Args:
        source: Complete Go program text.
        directory: Where to create the file. Defaults to the system temp dir.

    Returns:
        Path of the written file, named typescriptify_<random>.go.

    Raises:
        OSError: Propagated if the file cannot be created or written.
    """
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        prefix=DRIVER_PREFIX,
        suffix=GO_FILE_SUFFIX,
        dir=directory,
        delete=False,
    ) as handle:
        path = Path(handle.name)
        try:
            handle.write(source)
        except (OSError, ValueError):
            try:
                os.unlink(path)
            except OSError:
                pass
            raise
    return path


def format_driver_dump(path: Path, source: str) -> str:
    return f"\nCompiling generated code ({path}):\n{source}\n{DUMP_SEPARATOR}"


def dump_driver(path: Path) -> None:
    print(format_driver_dump(path, path.read_text(encoding="utf-8")))


def execute_driver(path: Path, go_command: tuple[str, ...] = GO_COMMAND) -> str:
    """Compile and run the driver, returning its combined stdout/stderr.

    Blocks until the child exits. There is no timeout.

    Raises:
        ExecutionError: The child exited non-zero. Its captured output has
            already been printed to stdout.
        OSError: The toolchain executable could not be started.
    """
    command = (*go_command, str(path))
    result = subprocess.run(
        list(command),
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        print(result.stdout)
        raise ExecutionError(result.returncode, command, result.stdout)
    return result.stdout


# ===--- S6 Pipeline ---=== #


@dataclass(frozen=True)
class RunResult:
    driver_path: Path
    struct_count: int
    alias_count: int
    output: str


def run_generate(
    config: GenerateConfig, go_command: tuple[str, ...] = GO_COMMAND
) -> RunResult:
    """Execute the pipeline: scan -> resolve -> build -> render -> run.

    The target file is written by the driver inside the child process and is
    not inspected here. If the child fails midway, whatever it already wrote
    to the target is left as is.

    Args:
        config: Validated GenerateConfig from build_config.
        go_command: Toolchain command prefix the driver path is appended to.

    Returns:
        RunResult for the completed run. The driver file no longer exists.

    Raises:
        ParseError: A Go input file is unreadable or malformed.
        OSError: Injection file unreadable, temp file failure, or the
            toolchain executable is missing.
        ExecutionError: The driver failed to compile or run.
    """
    resolver = PackageAliasResolver(config.models_package)
    structs = build_struct_references(config.inputs, resolver, verbose=config.verbose)

    driver = build_driver_config(
        config,
        resolver.aliases,
        structs,
        extra_imports=read_injection(config.extra_imports),
        extra_commands=read_injection(config.extra_commands),
    )
    source = assemble_driver_source(driver)

    path = write_driver(source)
    try:
        if config.verbose:
            dump_driver(path)
            print(f"Running: {' '.join((*go_command, str(path)))}")
        output = execute_driver(path, go_command)
    finally:
        try:
            os.unlink(path)
        except OSError:
            pass

    if config.verbose and output:
        print(output, end="")

    return RunResult(
        driver_path=path,
        struct_count=len(structs),
        alias_count=len(driver.aliases),
        output=output,
    )


# ===--- Main ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ValidationError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err

    try:
        run_generate(config)
    except ParseError as err:
        print(f"Error loading/parsing golang file {err}", file=sys.stderr)
        raise SystemExit(1) from err
    except ExecutionError as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(err.returncode if err.returncode > 0 else 1) from err
    except OSError as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
