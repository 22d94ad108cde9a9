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

"""Tests for winhance_unattend.powershell module.

Tests the PowerShell formatting helpers including:
- String escaping and quoting
- Registry path conversion
- Value literals per registry kind
- ScriptBuffer indentation and here-string handling
"""

from __future__ import annotations

import pytest

from winhance_unattend.models import Phase, RegistryTarget
from winhance_unattend.powershell import (
    ScriptBuffer,
    convert_key_path,
    escape_string,
    format_byte,
    format_value,
    quote,
    registry_type_name,
    sanitize_variable_name,
)

pytestmark = pytest.mark.unit


class TestQuoting:
    """Tests for escape_string and quote."""

    def test_escape_doubles_single_quotes(self):
        """Test that single quotes are doubled."""
        assert escape_string("it's") == "it''s"

    def test_escape_none(self):
        """Test that None escapes to an empty string."""
        assert escape_string(None) == ""

    def test_quote(self):
        """Test single-quoted literals."""
        assert quote("Bob's PC") == "'Bob''s PC'"
        assert quote(5) == "'5'"


class TestConvertKeyPath:
    """Tests for convert_key_path."""

    @pytest.mark.parametrize(
        ("long_path", "drive_path"),
        [
            ("HKEY_CURRENT_USER\\Software\\Foo", "HKCU:\\Software\\Foo"),
            ("HKEY_LOCAL_MACHINE\\SOFTWARE\\Foo", "HKLM:\\SOFTWARE\\Foo"),
            ("HKEY_CLASSES_ROOT\\CLSID\\{x}", "HKCR:\\CLSID\\{x}"),
            ("HKEY_USERS\\.DEFAULT\\Software", "HKU:\\.DEFAULT\\Software"),
        ],
    )
    def test_hive_conversion(self, long_path, drive_path):
        """Test conversion of each long hive name."""
        assert convert_key_path(long_path) == drive_path

    @pytest.mark.parametrize(
        ("short_path", "drive_path"),
        [
            ("HKCU\\Software\\Foo", "HKCU:\\Software\\Foo"),
            ("HKLM\\SOFTWARE\\Foo", "HKLM:\\SOFTWARE\\Foo"),
            ("HKCR\\CLSID\\{x}", "HKCR:\\CLSID\\{x}"),
            ("hku\\.DEFAULT\\Software", "HKU:\\.DEFAULT\\Software"),
        ],
    )
    def test_short_hive_conversion(self, short_path, drive_path):
        """Test conversion of each abbreviated hive name."""
        assert convert_key_path(short_path) == drive_path

    def test_short_hive_keeps_phase(self):
        """Test that an abbreviated HKCU path is both user-phase and a drive path."""
        target = RegistryTarget("HKCU\\Software\\Foo", "Bar", "DWord", 1, 0)

        assert target.phase is Phase.USER
        assert convert_key_path(target.key_path).startswith("HKCU:\\")

    def test_drive_syntax_unchanged(self):
        """Test that drive paths pass through."""
        assert convert_key_path("HKLM:\\SOFTWARE\\Foo") == "HKLM:\\SOFTWARE\\Foo"


class TestFormatValue:
    """Tests for format_value."""

    def test_none_is_null(self):
        """Test that None formats as $null."""
        assert format_value(None, "DWord") == "$null"

    def test_string_kinds(self):
        """Test that string kinds are quoted and escaped."""
        assert format_value("it's", "String") == "'it''s'"
        assert format_value("%SystemRoot%", "ExpandString") == "'%SystemRoot%'"

    def test_numeric_kinds(self):
        """Test integer, boolean and numeric string values."""
        assert format_value(0, "DWord") == "0"
        assert format_value(4294967295, "QWord") == "4294967295"
        assert format_value(True, "DWord") == "1"
        assert format_value("0x10", "DWord") == "16"

    def test_binary(self):
        """Test byte array literals from bytes, lists and hex strings."""
        assert format_value(b"\x0a\x2a", "Binary") == "@(0x0A,0x2A)"
        assert format_value([1, 255], "Binary") == "@(0x01,0xFF)"
        assert format_value("9e 1e 07 80", "Binary") == "@(0x9E,0x1E,0x07,0x80)"

    def test_multistring(self):
        """Test string array literals."""
        assert format_value(["a", "b'c"], "MultiString") == "@('a','b''c')"
        assert format_value("single", "MultiString") == "@('single')"


class TestFormatByte:
    """Tests for format_byte."""

    def test_integer_truncated(self):
        """Test that integers are truncated to their low byte."""
        assert format_byte(0x2A) == ("0x2A", True)
        assert format_byte(0x12A) == ("0x2A", True)

    def test_single_byte(self):
        """Test that one-byte values pass through."""
        assert format_byte(b"\x80") == ("0x80", True)

    @pytest.mark.parametrize("value", ["abc", None, 1.5, b"\x01\x02", True])
    def test_fallback(self, value):
        """Test that anything else falls back to 0x00."""
        assert format_byte(value) == ("0x00", False)


class TestHelpers:
    """Tests for small helpers."""

    def test_registry_type_name(self):
        """Test -Type names with String fallback."""
        assert registry_type_name("DWord") == "DWord"
        assert registry_type_name("None") == "String"

    def test_sanitize_variable_name(self):
        """Test variable name sanitization."""
        assert sanitize_variable_name("power-hibernation.enable") == "power_hibernation_enable"


class TestScriptBuffer:
    """Tests for ScriptBuffer."""

    def test_indented_lines(self):
        """Test that lines follow the indent level."""
        buf = ScriptBuffer()
        buf.line("if ($true) {")
        with buf.indented():
            buf.line("Write-Log 'x'")
        buf.line("}")

        assert buf.lines() == ["if ($true) {", "    Write-Log 'x'", "}"]

    def test_block_dedents(self):
        """Test that block() strips common indentation."""
        buf = ScriptBuffer()
        with buf.indented():
            buf.block(
                """
                foreach ($x in $y) {
                    $x
                }
                """
            )

        assert buf.lines() == ["    foreach ($x in $y) {", "        $x", "    }"]

    def test_banner(self):
        """Test the section banner layout."""
        buf = ScriptBuffer()
        buf.banner("PRIVACY SETTINGS")

        assert buf.lines()[2] == "# PRIVACY SETTINGS"
        assert buf.lines()[1] == "# " + "=" * 76

    def test_extend_indents_nested_buffer(self):
        """Test that extend() indents ordinary lines."""
        inner = ScriptBuffer()
        inner.line("$a = 1")
        inner.blank()
        outer = ScriptBuffer()
        with outer.indented():
            outer.extend(inner)

        assert outer.lines() == ["    $a = 1", ""]

    def test_here_string_terminator_stays_at_column_zero(self):
        """Test that nested here-strings keep their body and terminator verbatim."""
        inner = ScriptBuffer()
        inner.here_string("$content", "line one\n  line two")
        outer = ScriptBuffer()
        with outer.indented(2):
            outer.extend(inner)

        assert outer.lines() == [
            "        $content = @'",
            "line one",
            "  line two",
            "'@",
        ]

    def test_text_ends_with_newline(self):
        """Test that text() joins lines with a trailing newline."""
        buf = ScriptBuffer()
        buf.line("a")
        buf.line("b")

        assert buf.text() == "a\nb\n"
        assert len(buf) == 2
