"""
Loads ecosystem files into ProcessSpec records.

An ecosystem file declares the apps to launch as a list of records
(`name`, `script`/`command`, `exec_mode`, `args`, `cwd`, `out_file`,
`error_file`, plus optional supervision keys). Three renditions are accepted:
the `module.exports = { apps: [...] }` JavaScript form, plain JSON and YAML.
"""
import json
import shlex
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

log = logging.getLogger(__name__)

FORK_MODES = {"fork", "fork_mode"}
JS_SUFFIXES = {".js", ".cjs"}
YAML_SUFFIXES = {".yaml", ".yml"}


class EcosystemConfigError(ValueError):
    """Raised when an ecosystem file cannot be read or describes invalid apps."""


@dataclass(frozen=True)
class ProcessSpec:
    """A declarative description of one external process to launch."""

    name: str
    command: str
    arguments: Tuple[str, ...]
    working_directory: Path
    stdout_log_path: Path
    stderr_log_path: Path
    exec_mode: str = "fork"
    env: Dict[str, str] = field(default_factory=dict, hash=False)
    autorestart: bool = True
    max_restarts: Optional[int] = None
    restart_delay: int = 0  # milliseconds
    watch: Tuple[Path, ...] = ()


#* --- JavaScript object literal -> JSON ---
def _decode_js_string(text: str, start: int) -> Tuple[str, int]:
    """Decodes a quoted JS string starting at `start`. Returns (value, index after closing quote)."""
    quote = text[start]
    escapes = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
    chars = []
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == quote:
            return "".join(chars), i + 1
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt == "u" and i + 5 < len(text):
                try:
                    chars.append(chr(int(text[i + 2:i + 6], 16)))
                    i += 6
                    continue
                except ValueError:
                    pass
            if nxt == "\n":
                i += 2
                continue
            chars.append(escapes.get(nxt, nxt))
            i += 2
            continue
        if ch == "\n" and quote != "`":
            break
        chars.append(ch)
        i += 1
    raise EcosystemConfigError(f"Unterminated string literal starting at offset {start}.")


def _skip_comment(text: str, i: int) -> int:
    """Returns the index after a comment starting at `i`, or `i` if there is none."""
    if text.startswith("//", i):
        end = text.find("\n", i)
        return len(text) if end == -1 else end
    if text.startswith("/*", i):
        end = text.find("*/", i + 2)
        if end == -1:
            raise EcosystemConfigError("Unterminated block comment.")
        return end + 2
    return i


def js_object_to_json(text: str) -> str:
    """
    Converts the exported object literal of an ecosystem.config.js file to JSON.

    Everything before the first `{` or `[` (e.g. `module.exports =`) and
    everything after the matching close (e.g. `;`) is dropped. Comments,
    single-quoted and template strings, bare keys and trailing commas are
    normalized. Any other JavaScript expression is rejected.

    :param text: The JavaScript source.
    :return: A JSON document.
    :raises EcosystemConfigError: If the literal uses unsupported syntax.
    """
    out: List[str] = []
    depth = 0
    started = finished = False
    i = 0
    while i < len(text):
        after_comment = _skip_comment(text, i)
        if after_comment != i:
            i = after_comment
            continue

        ch = text[i]
        if not started or finished:
            if ch in "{[" and not finished:
                started = True
            else:
                if ch in "'\"`":
                    _, i = _decode_js_string(text, i)
                else:
                    i += 1
                continue

        if ch in "'\"`":
            value, i = _decode_js_string(text, i)
            if ch == "`" and "${" in value:
                raise EcosystemConfigError("Template literals with ${...} expressions are not supported.")
            out.append(json.dumps(value))
        elif ch.isdigit() or (ch in "-." and i + 1 < len(text) and text[i + 1].isdigit()):
            j = i + 1
            while j < len(text) and (text[j].isalnum() or text[j] == "." or (text[j] in "+-" and text[j - 1] in "eE")):
                j += 1
            out.append(text[i:j])
            i = j
        elif ch in "{[":
            depth += 1
            out.append(ch)
            i += 1
        elif ch in "}]":
            while out and out[-1].isspace():
                out.pop()
            if out and out[-1] == ",":
                out.pop()
            depth -= 1
            out.append(ch)
            i += 1
            if depth == 0:
                finished = True
        elif ch.isalpha() or ch in "_$":
            j = i
            while j < len(text) and (text[j].isalnum() or text[j] in "_$"):
                j += 1
            word = text[i:j]
            k = j
            while k < len(text) and text[k] in " \t\r\n":
                k += 1
            if k < len(text) and text[k] == ":":
                out.append(json.dumps(word))
            elif word in ("true", "false", "null"):
                out.append(word)
            elif word == "undefined":
                out.append("null")
            else:
                raise EcosystemConfigError(f"Unsupported JavaScript expression '{word}' in ecosystem file.")
            i = j
        else:
            out.append(ch)
            i += 1

    if not started:
        raise EcosystemConfigError("No exported object or array found in ecosystem file.")
    if not finished:
        raise EcosystemConfigError("Unbalanced braces in ecosystem file.")
    return "".join(out)


#* --- File loading ---
def read_ecosystem_file(path: Path) -> Any:
    """
    Reads an ecosystem file and returns its raw parsed structure.

    :param path: The ecosystem file path (.js, .cjs, .json, .yaml or .yml).
    :return: The parsed document.
    :raises EcosystemConfigError: If the file is missing, unreadable or malformed.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (IOError, OSError) as e:
        raise EcosystemConfigError(f"Cannot read ecosystem file '{path}': {e}") from e

    suffix = path.suffix.lower()
    try:
        if suffix in YAML_SUFFIXES:
            return yaml.safe_load(text)
        if suffix in JS_SUFFIXES:
            return json.loads(js_object_to_json(text))
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise EcosystemConfigError(f"Cannot parse ecosystem file '{path}': {e}") from e


def _get_apps(document: Any) -> List[Dict[str, Any]]:
    if isinstance(document, dict):
        document = document.get("apps")
    if not isinstance(document, list):
        raise EcosystemConfigError("Ecosystem file must declare a list of apps (top-level list or 'apps' key).")
    return document


def _parse_args(name: str, raw: Any) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        try:
            return tuple(shlex.split(raw))
        except ValueError as e:
            raise EcosystemConfigError(f"App '{name}': cannot split args string: {e}") from e
    if isinstance(raw, (list, tuple)) and all(isinstance(a, (str, int, float)) for a in raw):
        return tuple(str(a) for a in raw)
    raise EcosystemConfigError(f"App '{name}': 'args' must be a string or a list of strings.")


def _resolve(path_value: Any, base: Path) -> Path:
    path = Path(str(path_value)).expanduser()
    return path if path.is_absolute() else base / path


def _parse_watch(name: str, raw: Any, cwd: Path) -> Tuple[Path, ...]:
    if raw in (None, False):
        return ()
    if raw is True:
        return (cwd,)
    if isinstance(raw, str):
        raw = [raw]
    if isinstance(raw, list) and all(isinstance(p, str) for p in raw):
        return tuple(_resolve(p, cwd) for p in raw)
    raise EcosystemConfigError(f"App '{name}': 'watch' must be a boolean, a path or a list of paths.")


def _parse_app(record: Any, base_dir: Path, logs_dir: Path) -> ProcessSpec:
    if not isinstance(record, dict):
        raise EcosystemConfigError(f"Each app must be an object, got {type(record).__name__}.")

    name = record.get("name")
    if not isinstance(name, str) or not name.strip():
        raise EcosystemConfigError("Every app needs a non-empty string 'name'.")

    command = record.get("script", record.get("command"))
    if not isinstance(command, str) or not command.strip():
        raise EcosystemConfigError(f"App '{name}': 'script' (or 'command') must name an executable.")

    exec_mode = str(record.get("exec_mode", "fork"))
    if exec_mode not in FORK_MODES:
        raise EcosystemConfigError(f"App '{name}': exec_mode '{exec_mode}' is not supported, only 'fork'.")

    env = record.get("env") or {}
    if not isinstance(env, dict):
        raise EcosystemConfigError(f"App '{name}': 'env' must be an object.")

    max_restarts = record.get("max_restarts")
    restart_delay = record.get("restart_delay", 0)
    try:
        max_restarts = None if max_restarts is None else int(max_restarts)
        restart_delay = int(restart_delay)
    except (TypeError, ValueError) as e:
        raise EcosystemConfigError(f"App '{name}': restart settings must be integers.") from e

    cwd = _resolve(record["cwd"], base_dir) if record.get("cwd") else base_dir
    out_file = record.get("out_file", record.get("output"))
    error_file = record.get("error_file", record.get("error"))

    return ProcessSpec(
        name=name,
        command=command,
        arguments=_parse_args(name, record.get("args")),
        working_directory=cwd,
        stdout_log_path=_resolve(out_file, cwd) if out_file else logs_dir / f"{name}-out.log",
        stderr_log_path=_resolve(error_file, cwd) if error_file else logs_dir / f"{name}-error.log",
        exec_mode="fork",
        env={str(k): str(v) for k, v in env.items()},
        autorestart=bool(record.get("autorestart", True)),
        max_restarts=max_restarts,
        restart_delay=restart_delay,
        watch=_parse_watch(name, record.get("watch"), cwd),
    )


def parse_apps(records: Iterable[Any], base_dir: Path, logs_dir: Path) -> List[ProcessSpec]:
    """
    Builds ProcessSpec records from raw app records.

    :param records: The app records, in declaration order.
    :param base_dir: Directory that relative `cwd` values resolve against.
    :param logs_dir: Directory for default log files.
    :return: The specs, in declaration order.
    :raises EcosystemConfigError: On any invalid record or a duplicate name.
    """
    specs: List[ProcessSpec] = []
    seen = set()
    for record in records:
        spec = _parse_app(record, Path(base_dir), Path(logs_dir))
        if spec.name in seen:
            raise EcosystemConfigError(f"Duplicate app name '{spec.name}'. App names must be unique.")
        seen.add(spec.name)
        specs.append(spec)
    return specs


def load_ecosystem(path: Path, logs_dir: Path) -> List[ProcessSpec]:
    """
    Loads an ecosystem file into an ordered list of ProcessSpec records.

    :param path: The ecosystem file.
    :param logs_dir: Directory for default log files.
    :return: The declared specs.
    """
    path = Path(path).resolve()
    specs = parse_apps(_get_apps(read_ecosystem_file(path)), path.parent, logs_dir)
    log.debug(f"Loaded {len(specs)} app(s) from '{path}': {', '.join(s.name for s in specs)}")
    return specs


def find_ecosystem_file(directory: Path, file_names: Sequence[str]) -> Optional[Path]:
    """Returns the first existing ecosystem file in `directory`, or None."""
    for file_name in file_names:
        candidate = Path(directory) / file_name
        if candidate.is_file():
            return candidate
    return None
