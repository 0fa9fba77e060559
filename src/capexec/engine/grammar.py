"""
CapExec name grammar.

A CapExec sink is any item whose name parses as::

    <basename>.[<pre-stages>].<nature>[+].[<post-stages>].<domain>

- Pre/post stage lists are optional; when present they are delimited by the
  literal pairs ``.[`` and ``].`` and hold at least one stage token.
- Stage tokens are separated by commas and/or whitespace.
- A ``+`` directly after the nature marks a multi-output generator.

Examples:
    abc.sql.ts
    abc.[one two].sql.[min gzip].ts
    abc.[preA,preB].sql+.[postA].py

Parsing never raises: a non-matching name returns ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_NAME_RE = re.compile(
    r"(?P<basename>[^.]+)"
    r"(?:\.\[(?P<pre>[^\]]+)\])?"
    r"\.(?P<nature>[A-Za-z0-9][A-Za-z0-9_-]*)(?P<plus>\+)?"
    r"(?:\.\[(?P<post>[^\]]+)\])?"
    r"\.(?P<domain>[A-Za-z0-9][A-Za-z0-9_-]*)"
)

_SEPARATORS = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class CapExecName:
    """Parsed components of a CapExec sink name."""

    basename: str
    nature: str
    is_multi: bool
    domain: str
    pre_stages: tuple[str, ...] = ()
    post_stages: tuple[str, ...] = ()

    @property
    def nature_token(self) -> str:
        """Nature with the trailing ``+`` restored for multi-output sinks."""
        return f"{self.nature}+" if self.is_multi else self.nature

    @property
    def output_name(self) -> str:
        """File name of the single-output target: ``<basename>.auto.<nature>``."""
        return f"{self.basename}.auto.{self.nature}"


def split_stages(block: str | None) -> tuple[str, ...]:
    """Split the inside of a ``.[ ... ].`` block on commas and whitespace."""
    if block is None:
        return ()
    return tuple(token for token in _SEPARATORS.split(block) if token)


def parse_capexec_name(name: str) -> CapExecName | None:
    """
    Parse ``name`` with the CapExec grammar.

    Returns None when the whole name does not match, or when a stage bracket
    is present but holds no tokens (``.[ ].`` or ``.[,].``).
    """
    m = _NAME_RE.fullmatch(name)
    if m is None:
        return None

    pre = split_stages(m.group("pre"))
    post = split_stages(m.group("post"))
    if (m.group("pre") is not None and not pre) or (m.group("post") is not None and not post):
        return None

    return CapExecName(
        basename=m.group("basename"),
        nature=m.group("nature"),
        is_multi=m.group("plus") is not None,
        domain=m.group("domain"),
        pre_stages=pre,
        post_stages=post,
    )


__all__ = ["CapExecName", "parse_capexec_name", "split_stages"]
