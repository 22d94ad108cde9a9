# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""PowerShell text helpers shared by every emitter.

Provides literal formatting (strings, registry values, byte literals),
registry path conversion to PowerShell drive syntax, and ScriptBuffer,
the indented line buffer each section writes into.

Example:
    Write an indented block:
        ```python
        from winhance_unattend.powershell import ScriptBuffer, quote

        buf = ScriptBuffer()
        buf.line("if ($true) {")
        with buf.indented():
            buf.line(f"Write-Log {quote(message)} 'INFO'")
        buf.line("}")
        print(buf.text())
        ```
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import re
import textwrap
from typing import Any

INDENT = "    "

_HIVE_PREFIXES = (
    ("HKEY_CURRENT_USER\\", "HKCU:\\"),
    ("HKEY_LOCAL_MACHINE\\", "HKLM:\\"),
    ("HKEY_CLASSES_ROOT\\", "HKCR:\\"),
    ("HKEY_USERS\\", "HKU:\\"),
    ("HKCU\\", "HKCU:\\"),
    ("HKLM\\", "HKLM:\\"),
    ("HKCR\\", "HKCR:\\"),
    ("HKU\\", "HKU:\\"),
)

_REGISTRY_TYPES = {
    "String": "String",
    "ExpandString": "ExpandString",
    "DWord": "DWord",
    "QWord": "QWord",
    "Binary": "Binary",
    "MultiString": "MultiString",
}


def escape_string(text: str | None) -> str:
    """Escape text for use inside a single-quoted PowerShell string."""
    if not text:
        return ""
    return text.replace("'", "''")


def quote(text: Any) -> str:
    """Return ``text`` as a single-quoted PowerShell literal."""
    return f"'{escape_string(str(text))}'"


def convert_key_path(key_path: str) -> str:
    """Convert a registry path to PowerShell drive syntax.

    Args:
        key_path: Path such as "HKEY_CURRENT_USER\\Software\\Foo" or
            "HKCU\\Software\\Foo".

    Returns:
        Path such as "HKCU:\\Software\\Foo". Paths that already use drive
        syntax are returned unchanged.
    """
    upper = key_path.upper()
    for long_prefix, drive in _HIVE_PREFIXES:
        if upper.startswith(long_prefix):
            return drive + key_path[len(long_prefix) :]
    return key_path


def registry_type_name(value_kind: str) -> str:
    """Map a value kind to the ``-Type`` argument of Set-ItemProperty."""
    return _REGISTRY_TYPES.get(value_kind, "String")


def format_byte(value: Any) -> tuple[str, bool]:
    """Format a single byte literal for a byte patch.

    Integers are truncated to their low byte. One-byte ``bytes`` values are
    accepted as-is. Anything else falls back to ``0x00``.

    Args:
        value: Resolved value for the patched byte.

    Returns:
        A tuple (literal, ok) where literal is e.g. "0x2A" and ok is False
        when the fallback was used.

    Example:
        >>> format_byte(0x2A)
        ('0x2A', True)
        >>> format_byte(298)
        ('0x2A', True)
        >>> format_byte("abc")
        ('0x00', False)
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return f"0x{value & 0xFF:02X}", True
    if isinstance(value, (bytes, bytearray)) and len(value) == 1:
        return f"0x{value[0]:02X}", True
    return "0x00", False


def _byte_array(values: Any) -> str:
    return "@(" + ",".join(f"0x{int(b) & 0xFF:02X}" for b in values) + ")"


def format_value(value: Any, value_kind: str) -> str:
    """Format a registry value as a PowerShell literal for its kind.

    Rules:
      - None -> $null
      - String / ExpandString -> single-quoted, quotes doubled
      - DWord / QWord -> integer literal (numeric strings are parsed)
      - Binary -> @(0xAA,0xBB) byte array
      - MultiString -> @('a','b') string array
      - bool -> $true / $false for kinds without a numeric meaning

    Args:
        value: Resolved value.
        value_kind: Registry value kind of the target.

    Returns:
        PowerShell literal text.

    Example:
        >>> format_value(0, "DWord")
        '0'
        >>> format_value("it's", "String")
        "'it''s'"
        >>> format_value(b"\\x0a\\x2a", "Binary")
        '@(0x0A,0x2A)'
    """
    if value is None:
        return "$null"

    if value_kind in ("String", "ExpandString"):
        return quote(value)

    if value_kind in ("DWord", "QWord"):
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            try:
                return str(int(value.strip(), 0))
            except ValueError:
                return quote(value)
        return quote(value)

    if value_kind == "Binary":
        if isinstance(value, (bytes, bytearray, list, tuple)):
            return _byte_array(value)
        if isinstance(value, str):
            cleaned = re.sub(r"[^0-9A-Fa-f]", "", value)
            try:
                return _byte_array(bytes.fromhex(cleaned))
            except ValueError:
                return "@()"
        literal, _ = format_byte(value)
        return f"@({literal})"

    if value_kind == "MultiString":
        items = value if isinstance(value, (list, tuple)) else [value]
        return "@(" + ",".join(quote(item) for item in items) + ")"

    if isinstance(value, bool):
        return "$true" if value else "$false"
    return quote(value)


def sanitize_variable_name(name: str) -> str:
    """Turn a setting id into a PowerShell variable name fragment."""
    return re.sub(r"[^0-9A-Za-z_]", "_", name)


class ScriptBuffer:
    """Indented line buffer for one script region.

    Lines written with ``line`` get the current indentation. ``raw`` lines
    are written verbatim and stay verbatim when the buffer is nested into
    another with ``extend``; here-string bodies and terminators require
    this.
    """

    def __init__(self, indent: int = 0) -> None:
        self._lines: list[str] = []
        self._raw: set[int] = set()
        self._level = indent

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def level(self) -> int:
        return self._level

    def line(self, text: str = "") -> None:
        if text:
            self._lines.append(INDENT * self._level + text)
        else:
            self._lines.append("")

    def blank(self) -> None:
        self._lines.append("")

    def raw(self, text: str) -> None:
        for piece in text.split("\n"):
            self._raw.add(len(self._lines))
            self._lines.append(piece)

    def block(self, text: str) -> None:
        """Write a multi-line block, dedented then re-indented."""
        for piece in textwrap.dedent(text).strip("\n").split("\n"):
            self.line(piece.rstrip())

    def extend(self, other: ScriptBuffer) -> None:
        """Append another buffer, indented to the current level."""
        for index, text in enumerate(other._lines):
            if index in other._raw:
                self._raw.add(len(self._lines))
                self._lines.append(text)
            elif text:
                self._lines.append(INDENT * self._level + text)
            else:
                self._lines.append("")

    def comment(self, text: str) -> None:
        self.line(f"# {text}")

    def banner(self, title: str) -> None:
        self.blank()
        self.line("# " + "=" * 76)
        self.line(f"# {title}")
        self.line("# " + "=" * 76)
        self.blank()

    def here_string(self, variable: str, content: str) -> None:
        """Assign ``content`` to ``variable`` with a literal here-string.

        Single-quoted here-strings do no expansion, so the payload is
        embedded byte for byte. The terminator must start its own line.
        """
        self.line(f"{variable} = @'")
        self.raw(content.rstrip("\n"))
        self.raw("'@")

    @contextmanager
    def indented(self, levels: int = 1) -> Iterator[None]:
        self._level += levels
        try:
            yield
        finally:
            self._level -= levels

    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines) + "\n"
