"""
Test support utilities for capexec tests.

Script bodies and writers shared across test modules. Scripts get a shebang
for the running interpreter so they run without any shell utilities.
"""

from __future__ import annotations

import stat
import sys
from pathlib import Path

# Copies stdin to stdout unchanged.
ECHO_SCRIPT = "import sys\nsys.stdout.buffer.write(sys.stdin.buffer.read())\n"

# Upper-cases stdin.
UPPER_SCRIPT = "import sys\nsys.stdout.write(sys.stdin.read().upper())\n"

# Reverses the order of stdin lines.
REVERSE_LINES_SCRIPT = "import sys\nsys.stdout.writelines(reversed(sys.stdin.readlines()))\n"

# Dumps the CAPEXEC_* environment as JSON.
ENV_DUMP_SCRIPT = (
    "import json, os, sys\n"
    "sys.stdin.read()\n"
    "json.dump({k: v for k, v in os.environ.items() if k.startswith(('CAPEXEC_', 'STAGE_'))}, sys.stdout)\n"
)


def write_script(path: Path, body: str, executable: bool = True) -> Path:
    """Write a Python script with a shebang; chmod +x unless ``executable`` is False."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def emit_script(text: str) -> str:
    """Body of a script that ignores stdin and prints ``text``."""
    return f"import sys\nsys.stdin.read()\nsys.stdout.write({text!r})\n"


def fail_script(code: int, text: str = "") -> str:
    """Body of a script that prints ``text`` then exits with ``code``."""
    return f"import sys\nsys.stdin.read()\nsys.stdout.write({text!r})\nsys.exit({code})\n"
