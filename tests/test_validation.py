"""
Tests for winhance_unattend.validation module.

This module tests the PowerShell syntax check (with the host mocked) and
the configuration check, which runs without PowerShell.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from winhance_unattend.assembler import PowerSnapshot, ScriptAssembler
from winhance_unattend.exceptions import ScriptSyntaxError, ValidatorUnavailableError
from winhance_unattend.models import Catalog, RemovalItem, UnifiedConfiguration
from winhance_unattend.validation import (
    PowerShellSyntaxValidator,
    parse_diagnostics,
    validate_configuration,
)


def _which(available):
    return lambda name: f"/usr/bin/{name}" if name in available else None


class TestParseDiagnostics:
    """Tests for parse_diagnostics function."""

    def test_extracts_messages(self):
        """Test that each PARSE_ERROR line becomes one diagnostic."""
        output = (
            "PARSE_ERROR: line 3: Missing closing '}' in statement block.\n"
            "noise\n"
            "  PARSE_ERROR: line 9: Unexpected token ')' in expression.\n"
        )

        assert parse_diagnostics(output) == [
            "line 3: Missing closing '}' in statement block.",
            "line 9: Unexpected token ')' in expression.",
        ]

    def test_no_errors(self):
        """Test that clean output yields no diagnostics."""
        assert parse_diagnostics("") == []


class TestFindExecutable:
    """Tests for PowerShell host discovery."""

    @patch("winhance_unattend.validation.shutil.which")
    def test_prefers_pwsh(self, mock_which):
        """Test that PowerShell 7 is picked when both hosts exist."""
        mock_which.side_effect = _which({"pwsh", "powershell"})

        assert PowerShellSyntaxValidator()._find_executable() == "/usr/bin/pwsh"

    @patch("winhance_unattend.validation.shutil.which")
    def test_falls_back_to_windows_powershell(self, mock_which):
        """Test that Windows PowerShell is used when pwsh is missing."""
        mock_which.side_effect = _which({"powershell"})

        assert PowerShellSyntaxValidator()._find_executable() == "/usr/bin/powershell"

    @patch("winhance_unattend.validation.shutil.which")
    def test_no_host(self, mock_which):
        """Test that a missing host raises ValidatorUnavailableError."""
        mock_which.return_value = None

        with pytest.raises(ValidatorUnavailableError, match="No PowerShell host found"):
            PowerShellSyntaxValidator()._find_executable()

    @patch("winhance_unattend.validation.shutil.which")
    def test_explicit_executable_missing(self, mock_which):
        """Test that an explicit executable is not silently replaced."""
        mock_which.side_effect = _which({"pwsh"})

        with pytest.raises(ValidatorUnavailableError, match="not found: powershell"):
            PowerShellSyntaxValidator("powershell")._find_executable()


@patch("winhance_unattend.validation.shutil.which", new=_which({"pwsh"}))
class TestValidateSyntax:
    """Tests for PowerShellSyntaxValidator.validate_syntax (host mocked)."""

    @patch("winhance_unattend.validation.subprocess.run")
    def test_valid_script(self, mock_run):
        """Test that a clean parse returns without raising."""
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

        PowerShellSyntaxValidator().validate_syntax("Write-Host 'ok'\n")

        args, kwargs = mock_run.call_args
        assert args[0][:4] == ["/usr/bin/pwsh", "-NoProfile", "-NonInteractive", "-Command"]
        assert "ParseFile(" in args[0][4]
        assert kwargs["timeout"] == 60
        assert kwargs["capture_output"] is True

    @patch("winhance_unattend.validation.subprocess.run")
    def test_parse_errors(self, mock_run):
        """Test that parser errors raise with one diagnostic each."""
        mock_run.return_value = MagicMock(
            returncode=1,
            stdout=(
                "PARSE_ERROR: line 3: Missing closing '}'\n"
                "PARSE_ERROR: line 7: Unexpected token\n"
            ),
            stderr="",
        )

        with pytest.raises(ScriptSyntaxError, match="failed with 2 parse error") as exc_info:
            PowerShellSyntaxValidator().validate_syntax("if ($true) {\n")

        assert exc_info.value.diagnostics == [
            "line 3: Missing closing '}'",
            "line 7: Unexpected token",
        ]

    @patch("winhance_unattend.validation.subprocess.run")
    def test_stderr_used_without_diagnostics(self, mock_run):
        """Test that stderr explains a failure that printed no parse errors."""
        mock_run.return_value = MagicMock(
            returncode=1, stdout="", stderr="Exception calling ParseFile\n\n"
        )

        with pytest.raises(ScriptSyntaxError) as exc_info:
            PowerShellSyntaxValidator().validate_syntax("x")

        assert exc_info.value.diagnostics == ["Exception calling ParseFile"]

    @patch("winhance_unattend.validation.subprocess.run")
    def test_timeout(self, mock_run):
        """Test that a hung parser is reported as an unavailable validator."""
        mock_run.side_effect = subprocess.TimeoutExpired(["pwsh"], 5)

        with pytest.raises(ValidatorUnavailableError, match="timed out after 5s"):
            PowerShellSyntaxValidator(timeout=5).validate_syntax("x")

    @patch("winhance_unattend.validation.subprocess.run")
    def test_start_failure(self, mock_run):
        """Test that an OS error starting the host is reported."""
        mock_run.side_effect = OSError("permission denied")

        with pytest.raises(ValidatorUnavailableError, match="Failed to start"):
            PowerShellSyntaxValidator().validate_syntax("x")


@pytest.mark.integration
@pytest.mark.skipif(shutil.which("pwsh") is None, reason="PowerShell 7 not installed")
class TestValidateSyntaxLive:
    """Tests against a real PowerShell parser."""

    def test_valid_script(self):
        """Test that a well-formed script passes."""
        PowerShellSyntaxValidator("pwsh").validate_syntax(
            "if ($true) {\n    Write-Output 'ok'\n}\n"
        )

    def test_unclosed_block(self):
        """Test that an unclosed block is caught."""
        with pytest.raises(ScriptSyntaxError) as exc_info:
            PowerShellSyntaxValidator("pwsh").validate_syntax("if ($true) {\n")

        assert exc_info.value.diagnostics

    def test_empty_configuration_script(self):
        """Test that the script for an empty configuration parses."""
        text = ScriptAssembler(Catalog()).assemble(UnifiedConfiguration())

        PowerShellSyntaxValidator("pwsh").validate_syntax(text)

    def test_full_script(self, sample_catalog, sample_configuration, active_plan):
        """Test that a script with every embedded payload parses."""
        config = replace(
            sample_configuration,
            windows_apps=(
                RemovalItem("windows-app-xbox", "package", "Microsoft.GamingApp"),
                RemovalItem("capability-wmp", "capability", "Media.WindowsMediaPlayer"),
            ),
        )
        text = ScriptAssembler(sample_catalog).assemble(
            config, PowerSnapshot(active_plan=active_plan)
        )

        assert "$appRemovalContent = @'" in text
        assert "$layoutXml = @'" in text
        assert "\nif ($UserCustomizations) {" in text
        PowerShellSyntaxValidator("pwsh").validate_syntax(text)


class TestValidateConfiguration:
    """Tests for validate_configuration function."""

    @pytest.fixture
    def catalog_path(self, create_yaml_file, sample_catalog_data):
        return create_yaml_file("catalog.yaml", sample_catalog_data)

    def test_valid_configuration(
        self, create_yaml_file, catalog_path, sample_configuration_data
    ):
        """Test that the sample configuration passes."""
        config_path = create_yaml_file("config.yaml", sample_configuration_data)

        result = validate_configuration(config_path, catalog_path)

        assert result["status"] == "valid"
        assert result["errors"] == []
        assert result["warnings"] == []
        assert result["setting_count"] == 5
        assert result["config_path"] == str(config_path)

    def test_unknown_feature(self, create_yaml_file, catalog_path):
        """Test that an included feature missing from the catalog is an error."""
        config_path = create_yaml_file(
            "config.yaml",
            {
                "optimize": {
                    "features": {"gaming": {"items": [{"id": "game-mode", "isSelected": True}]}}
                }
            },
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["status"] == "invalid"
        assert result["errors"] == ["optimize.gaming: unknown feature"]

    def test_excluded_feature_ignored(self, create_yaml_file, catalog_path):
        """Test that a feature with isIncluded false is not checked."""
        config_path = create_yaml_file(
            "config.yaml",
            {
                "optimize": {
                    "features": {
                        "gaming": {
                            "isIncluded": False,
                            "items": [{"id": "game-mode", "isSelected": True}],
                        }
                    }
                }
            },
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["status"] == "valid"
        assert result["setting_count"] == 0

    def test_unknown_setting_id(self, create_yaml_file, catalog_path):
        """Test that an unknown setting id is an error."""
        config_path = create_yaml_file(
            "config.yaml",
            {"optimize": {"features": {"privacy": {"items": [{"id": "nope"}]}}}},
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["errors"] == ["optimize.privacy: unknown setting id 'nope'"]

    def test_bad_selection_index(self, create_yaml_file, catalog_path):
        """Test that an index with no value table entry is an error."""
        config_path = create_yaml_file(
            "config.yaml",
            {
                "customize": {
                    "features": {
                        "windows-theme-customization": {
                            "items": [{"id": "theme-mode", "selectedIndex": 7}]
                        }
                    }
                }
            },
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["errors"] == [
            "customize.windows-theme-customization.theme-mode: "
            "selectedIndex 7 has no entry in the value table"
        ]

    def test_custom_values_skip_index_check(self, create_yaml_file, catalog_path):
        """Test that custom state values stand in for the value table."""
        config_path = create_yaml_file(
            "config.yaml",
            {
                "customize": {
                    "features": {
                        "windows-theme-customization": {
                            "items": [
                                {
                                    "id": "theme-mode",
                                    "inputType": "selection",
                                    "customStateValues": {"AppsUseLightTheme": 1},
                                }
                            ]
                        }
                    }
                }
            },
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["status"] == "valid"

    def test_power_plan_without_guid(self, create_yaml_file, catalog_path):
        """Test that a power plan selection must name a plan."""
        config_path = create_yaml_file(
            "config.yaml",
            {
                "optimize": {
                    "features": {
                        "power": {
                            "items": [{"id": "power-plan-selection", "inputType": "power-plan"}]
                        }
                    }
                }
            },
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["errors"] == [
            "optimize.power.power-plan-selection: powerPlanGuid is required"
        ]

    def test_empty_feature_warns(self, create_yaml_file, catalog_path):
        """Test that an included feature without items is only a warning."""
        config_path = create_yaml_file(
            "config.yaml", {"optimize": {"features": {"privacy": {"items": []}}}}
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["status"] == "valid"
        assert result["warnings"] == ["optimize.privacy: included but has no items"]

    def test_app_without_name(self, create_yaml_file, catalog_path):
        """Test that a removal item with no package name is an error."""
        config_path = create_yaml_file(
            "config.yaml",
            {
                "windows_apps": {
                    "items": [{"id": "windows-app-edge"}, {"id": "windows-app-mystery"}]
                }
            },
        )

        result = validate_configuration(config_path, catalog_path)

        assert result["errors"] == [
            "windows_apps.items[1] (windows-app-mystery): no package name"
        ]

    def test_missing_catalog(self, tmp_path, create_yaml_file, sample_configuration_data):
        """Test that an unreadable catalog is reported, not raised."""
        config_path = create_yaml_file("config.yaml", sample_configuration_data)

        result = validate_configuration(config_path, tmp_path / "missing.yaml")

        assert result["status"] == "invalid"
        assert len(result["errors"]) == 1
        assert result["errors"][0].startswith("Catalog: file not found")

    def test_invalid_configuration_document(self, tmp_path, catalog_path):
        """Test that a malformed configuration is reported, not raised."""
        config_path = tmp_path / "config.yaml"
        config_path.write_text("optimize: [unclosed\n")

        result = validate_configuration(config_path, catalog_path)

        assert result["status"] == "invalid"
        assert result["errors"][0].startswith("Configuration: failed to parse YAML")

    def test_verbose_output(
        self, capsys, create_yaml_file, catalog_path, sample_configuration_data
    ):
        """Test that verbose mode prints progress."""
        config_path = create_yaml_file("config.yaml", sample_configuration_data)

        validate_configuration(config_path, catalog_path, verbose=True)

        out = capsys.readouterr().out
        assert "[OK] Catalog loaded: 4 feature(s)" in out
        assert "[OK] Configuration is valid!" in out
