"""Mask-format dispatch for field masking.

Formats are matched most specific first:

=========================  ===============================================
Format                     Result for a value
=========================  ===============================================
``****`` / ``***``         asterisks, at most 8
contains ``-``             dash chunks, ``{lastN}`` reveals a chunk's tail
``{lastN}``                last N characters revealed
``{firstN}``               first N characters revealed
contains ``@``             email-aware (value must contain ``@`` too)
anything else              first and last character kept
=========================  ===============================================

Example
-------
>>> mask_value("4111111111111234", "****-****-****-{last4}")
'****-****-****-1234'
>>> mask_value("alice@example.com", "***@***.***")
'a***e@e*****e.com'
"""
from __future__ import annotations

import math
import re

_LAST_RE = re.compile(r"\{last(\d+)\}")
_FIRST_RE = re.compile(r"\{first(\d+)\}")
_FIXED_FORMATS: frozenset[str] = frozenset(["****", "***"])
_FIXED_MAX: int = 8


def _keep_ends(part: str) -> str:
    if len(part) <= 2:
        return part
    return part[0] + "*" * (len(part) - 2) + part[-1]


def split_into_chunks(value: str, count: int) -> list[str]:
    """Split ``value`` into at most ``count`` equal chunks (last may be short)."""
    if not value or count <= 0:
        return []
    size = math.ceil(len(value) / count)
    return [value[i : i + size] for i in range(0, len(value), size)]


def _mask_dashed(value: str, mask_format: str) -> str:
    format_parts = mask_format.split("-")
    value_parts = value.split("-")
    if len(value_parts) != len(format_parts):
        value_parts = split_into_chunks(value, len(format_parts))

    masked: list[str] = []
    for index, part in enumerate(format_parts):
        chunk = value_parts[index] if index < len(value_parts) else ""
        reveal = _LAST_RE.search(part)
        if reveal is not None:
            reveal_count = int(reveal.group(1))
            masked.append(chunk[max(len(chunk) - reveal_count, 0):])
        else:
            masked.append("*" * (len(chunk) if chunk else len(part)))
    return "-".join(masked)


def _mask_email(value: str) -> str:
    local, _, domain = value.rpartition("@")
    labels = domain.split(".")
    masked_labels = [
        label if index == len(labels) - 1 else _keep_ends(label)
        for index, label in enumerate(labels)
    ]
    return f"{_keep_ends(local)}@{'.'.join(masked_labels)}"


def mask_value(value: object, mask_format: str) -> str | None:
    """Mask ``value`` according to ``mask_format``.

    ``None`` passes through unchanged; every other value is stringified
    first.  The same input always produces the same output.
    """
    if value is None:
        return None
    text = str(value)

    if mask_format in _FIXED_FORMATS:
        return "*" * min(len(text), _FIXED_MAX)

    if "-" in mask_format and "@" not in mask_format:
        return _mask_dashed(text, mask_format)

    last = _LAST_RE.search(mask_format)
    if last is not None:
        count = int(last.group(1))
        if len(text) <= count:
            return text
        if last.group(0) == mask_format:
            return "*" * (len(text) - count) + text[len(text) - count:]
        tail = text[len(text) - count:]
        return _LAST_RE.sub(lambda _m: tail, mask_format, count=1)

    first = _FIRST_RE.search(mask_format)
    if first is not None:
        count = int(first.group(1))
        if len(text) <= count:
            return text
        if first.group(0) == mask_format:
            return text[:count] + "*" * (len(text) - count)
        head = text[:count]
        return _FIRST_RE.sub(lambda _m: head, mask_format, count=1)

    if "@" in mask_format and "@" in text:
        return _mask_email(text)

    if len(text) <= 2:
        return "*" * len(text)
    return _keep_ends(text)
