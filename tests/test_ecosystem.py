"""Tests for ecosystem file loading: JS/JSON/YAML renditions and app validation."""

import dataclasses
import json
from pathlib import Path

import pytest

from ecolaunch.local.ecosystem import (
    EcosystemConfigError,
    ProcessSpec,
    find_ecosystem_file,
    js_object_to_json,
    load_ecosystem,
    parse_apps,
)


ECOSYSTEM_JS = """
// Two apps, backend and frontend.
module.exports = {
  apps: [
    {
      name: 'Backend',
      script: 'java',
      exec_mode: 'fork',
      /* spring profile goes last */
      args: ['-jar', 'target/app-0.0.1-SNAPSHOT.jar', '-Dspring.profiles.active=prod'],
      cwd: 'backend',
      out_file: './logs/stdout.log',
      error_file: './logs/stderr.log',
    },
    {
      name: "Frontend",
      script: 'npm',
      exec_mode: 'fork',
      args: ['start'],
      cwd: 'frontend',
      out_file: './logs/stdout_frontend.log',
      error_file: './logs/stderr_frontend.log',
      max_restarts: 5,
    },
  ],
};
"""


@pytest.fixture
def logs_dir(tmp_path):
    return tmp_path / "logs"


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


# ── JavaScript object literal ─────────────────────────────────


def test_js_object_to_json_handles_module_exports():
    doc = json.loads(js_object_to_json(ECOSYSTEM_JS))
    assert [app["name"] for app in doc["apps"]] == ["Backend", "Frontend"]
    assert doc["apps"][0]["args"][2] == "-Dspring.profiles.active=prod"
    assert doc["apps"][1]["max_restarts"] == 5


def test_js_object_to_json_keeps_comment_markers_inside_strings():
    doc = json.loads(js_object_to_json("module.exports = { url: 'http://x/*y*/', n: -1.5e2 }"))
    assert doc == {"url": "http://x/*y*/", "n": -150.0}


def test_js_object_to_json_decodes_escapes():
    doc = json.loads(js_object_to_json(r"""{ a: 'it\'s', b: "tab\there", c: `tpl` }"""))
    assert doc == {"a": "it's", "b": "tab\there", "c": "tpl"}


def test_js_object_to_json_maps_literals():
    doc = json.loads(js_object_to_json("[true, false, null, undefined,]"))
    assert doc == [True, False, None, None]


@pytest.mark.parametrize("source", [
    "module.exports = { apps: [{ name: 'a', script: process.env.CMD }] }",
    "module.exports = { cwd: `${__dirname}/app` }",
    "module.exports = { apps: [",
    "// nothing exported",
])
def test_js_object_to_json_rejects_unsupported_sources(source):
    with pytest.raises(EcosystemConfigError):
        js_object_to_json(source)


# ── load_ecosystem ────────────────────────────────────────────


def test_load_js_ecosystem(tmp_path, logs_dir):
    path = _write(tmp_path / "ecosystem.config.js", ECOSYSTEM_JS)

    backend, frontend = load_ecosystem(path, logs_dir)

    assert backend.name == "Backend"
    assert backend.command == "java"
    assert backend.arguments == ("-jar", "target/app-0.0.1-SNAPSHOT.jar", "-Dspring.profiles.active=prod")
    assert backend.exec_mode == "fork"
    assert backend.working_directory == tmp_path / "backend"
    assert backend.stdout_log_path == tmp_path / "backend" / "logs" / "stdout.log"
    assert backend.stderr_log_path == tmp_path / "backend" / "logs" / "stderr.log"
    assert backend.max_restarts is None
    assert frontend.command == "npm"
    assert frontend.arguments == ("start",)
    assert frontend.max_restarts == 5


def test_load_json_ecosystem(tmp_path, logs_dir):
    path = _write(tmp_path / "ecosystem.config.json", json.dumps({
        "apps": [{"name": "web", "command": "node", "args": "server.js --port 8080"}],
    }))

    (spec,) = load_ecosystem(path, logs_dir)

    assert spec.command == "node"
    assert spec.arguments == ("server.js", "--port", "8080")


def test_load_yaml_ecosystem_with_bare_list(tmp_path, logs_dir):
    path = _write(tmp_path / "ecosystem.config.yaml", (
        "- name: api\n"
        "  script: /usr/bin/env\n"
        "  args: [python3, -m, http.server]\n"
        "  cwd: /srv/api\n"
        "  autorestart: false\n"
        "  env:\n"
        "    PORT: 8000\n"
    ))

    (spec,) = load_ecosystem(path, logs_dir)

    assert spec.working_directory == Path("/srv/api")
    assert spec.autorestart is False
    assert spec.env == {"PORT": "8000"}


def test_load_missing_file_raises(tmp_path, logs_dir):
    with pytest.raises(EcosystemConfigError, match="Cannot read"):
        load_ecosystem(tmp_path / "nope.json", logs_dir)


def test_load_malformed_json_raises(tmp_path, logs_dir):
    path = _write(tmp_path / "ecosystem.config.json", "{ apps: ")
    with pytest.raises(EcosystemConfigError, match="Cannot parse"):
        load_ecosystem(path, logs_dir)


def test_load_requires_apps_list(tmp_path, logs_dir):
    path = _write(tmp_path / "ecosystem.config.json", '{"apps": {"name": "x"}}')
    with pytest.raises(EcosystemConfigError, match="list of apps"):
        load_ecosystem(path, logs_dir)


# ── parse_apps ────────────────────────────────────────────────


def test_defaults_for_cwd_and_log_files(tmp_path, logs_dir):
    (spec,) = parse_apps([{"name": "worker", "script": "python3"}], tmp_path, logs_dir)

    assert spec.working_directory == tmp_path
    assert spec.arguments == ()
    assert spec.stdout_log_path == logs_dir / "worker-out.log"
    assert spec.stderr_log_path == logs_dir / "worker-error.log"
    assert spec.autorestart is True
    assert spec.restart_delay == 0
    assert spec.watch == ()


def test_absolute_log_paths_are_kept(tmp_path, logs_dir):
    (spec,) = parse_apps([{
        "name": "w", "script": "x", "out_file": "/var/log/w.out", "error": "/var/log/w.err",
    }], tmp_path, logs_dir)

    assert spec.stdout_log_path == Path("/var/log/w.out")
    assert spec.stderr_log_path == Path("/var/log/w.err")


def test_script_wins_over_command(tmp_path, logs_dir):
    (spec,) = parse_apps([{"name": "w", "script": "java", "command": "node"}], tmp_path, logs_dir)
    assert spec.command == "java"


def test_watch_true_watches_working_directory(tmp_path, logs_dir):
    (spec,) = parse_apps([{"name": "w", "script": "x", "cwd": "app", "watch": True}], tmp_path, logs_dir)
    assert spec.watch == (tmp_path / "app",)


def test_watch_list_resolves_against_cwd(tmp_path, logs_dir):
    (spec,) = parse_apps([{"name": "w", "script": "x", "watch": ["src", "/etc/app.conf"]}], tmp_path, logs_dir)
    assert spec.watch == (tmp_path / "src", Path("/etc/app.conf"))


def test_apps_keep_declaration_order(tmp_path, logs_dir):
    records = [{"name": n, "script": "x"} for n in ("c", "a", "b")]
    assert [s.name for s in parse_apps(records, tmp_path, logs_dir)] == ["c", "a", "b"]


def test_duplicate_names_are_rejected(tmp_path, logs_dir):
    records = [{"name": "dup", "script": "x"}, {"name": "dup", "script": "y"}]
    with pytest.raises(EcosystemConfigError, match="Duplicate app name 'dup'"):
        parse_apps(records, tmp_path, logs_dir)


@pytest.mark.parametrize("record, message", [
    ({"script": "x"}, "name"),
    ({"name": "", "script": "x"}, "name"),
    ({"name": "a"}, "executable"),
    ({"name": "a", "script": "x", "exec_mode": "cluster"}, "exec_mode"),
    ({"name": "a", "script": "x", "args": {"k": "v"}}, "args"),
    ({"name": "a", "script": "x", "args": "unclosed 'quote"}, "args"),
    ({"name": "a", "script": "x", "env": ["A=1"]}, "env"),
    ({"name": "a", "script": "x", "max_restarts": "many"}, "integers"),
    ({"name": "a", "script": "x", "watch": 3}, "watch"),
    ("just a string", "object"),
])
def test_invalid_records_are_rejected(tmp_path, logs_dir, record, message):
    with pytest.raises(EcosystemConfigError, match=message):
        parse_apps([record], tmp_path, logs_dir)


def test_fork_mode_alias_is_accepted(tmp_path, logs_dir):
    (spec,) = parse_apps([{"name": "a", "script": "x", "exec_mode": "fork_mode"}], tmp_path, logs_dir)
    assert spec.exec_mode == "fork"


def test_process_spec_is_immutable(tmp_path, logs_dir):
    (spec,) = parse_apps([{"name": "a", "script": "x"}], tmp_path, logs_dir)
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.name = "b"


def test_find_ecosystem_file_prefers_earlier_names(tmp_path):
    names = ("ecosystem.config.js", "ecosystem.config.json")
    assert find_ecosystem_file(tmp_path, names) is None

    _write(tmp_path / "ecosystem.config.json", "[]")
    assert find_ecosystem_file(tmp_path, names) == tmp_path / "ecosystem.config.json"

    _write(tmp_path / "ecosystem.config.js", "module.exports = []")
    assert find_ecosystem_file(tmp_path, names) == tmp_path / "ecosystem.config.js"
