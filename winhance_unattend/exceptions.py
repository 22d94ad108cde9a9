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

"""Exception hierarchy for winhance-unattend.

This module defines the exceptions raised by the compiler so callers can
tell bad input documents apart from fatal compilation failures:

- ConfigError: Catalog or configuration document problems (YAML parse
  errors, missing fields, illegal registry target combinations)
- CompilationError: The script could not be produced
- ScriptSyntaxError: The assembled script failed the PowerShell parser
- ValidatorUnavailableError: No PowerShell host could check the script

Lookup problems inside an otherwise valid configuration (unknown setting
ids, unknown selection indexes, odd byte values) are NOT exceptions. They
are reported as warnings through the logger so one compilation can list
every anomaly at once.

Example:
    Catching specific error types:
        ```python
        from winhance_unattend.core import compile_files
        from winhance_unattend.exceptions import ConfigError, ScriptSyntaxError

        try:
            result = compile_files(Path("config.yaml"), Path("catalog.yaml"))
        except ConfigError as e:
            print(f"Configuration error: {e}")
        except ScriptSyntaxError as e:
            for line in e.diagnostics:
                print(line)
        ```
"""

from __future__ import annotations

__all__ = [
    "UnattendError",
    "ConfigError",
    "CompilationError",
    "ScriptSyntaxError",
    "ValidatorUnavailableError",
]


class UnattendError(Exception):
    """Base exception for all winhance-unattend errors."""

    pass


class ConfigError(UnattendError):
    """Raised for catalog and configuration document errors.

    This exception is raised when there are problems with:

    - YAML parsing (syntax errors, invalid structure)
    - Missing or invalid fields in a setting definition or selection
    - Registry targets that combine mutually exclusive modes (for example
      a bit mask on a GUID subkey target)
    - Missing input files
    """

    pass


class CompilationError(UnattendError):
    """Raised when a script cannot be produced.

    Compilation errors are fatal. No partial script is ever returned.
    """

    pass


class ScriptSyntaxError(CompilationError):
    """Raised when the assembled script fails the PowerShell parser.

    Attributes:
        diagnostics: Parser messages, one per syntax error, in the form
            "line N: message".

    Example:
        Reporting parser diagnostics:
            ```python
            try:
                validator.validate_syntax(script)
            except ScriptSyntaxError as err:
                for line in err.diagnostics:
                    print(f"  {line}")
            ```
    """

    def __init__(self, message: str, diagnostics: list[str] | None = None) -> None:
        super().__init__(message)
        self.diagnostics: list[str] = list(diagnostics or [])


class ValidatorUnavailableError(CompilationError):
    """Raised when no PowerShell host can run the syntax check.

    This covers a missing executable and a parser run that times out.
    """

    pass
