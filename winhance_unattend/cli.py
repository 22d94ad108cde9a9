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

"""Command-line interface for winhance-unattend.

Commands:

    compile: Compile a configuration into an unattended PowerShell script
    validate: Check a configuration against the catalog (no compilation)

Example:
    Compile on Windows with live power data:
        ```bash
        $ winhance-unattend compile config.yaml --catalog catalog.yaml -o Winhancements.ps1
        ```

    Compile elsewhere with a captured power snapshot:
        ```bash
        $ winhance-unattend compile config.yaml --catalog catalog.yaml \\
            --power-snapshot power.yaml --powershell pwsh
        ```

    Check a configuration:
        ```bash
        $ winhance-unattend validate config.yaml --catalog catalog.yaml
        ```

Exit Codes:

- 0: Success
- 1: Error (configuration, compilation, or validation failure)

Note:
    Each command has its own handler function (cmd_<command>).
    Verbose mode shows full tracebacks on errors for debugging.
    Debug mode implies verbose mode and shows subprocess commands.
"""

from __future__ import annotations

import argparse
from importlib.metadata import version
from pathlib import Path
import sys

from winhance_unattend.core import compile_files
from winhance_unattend.exceptions import ScriptSyntaxError, UnattendError
from winhance_unattend.logging import get_logger, set_global_logger
from winhance_unattend.sections.preamble import SCRIPT_NAME
from winhance_unattend.services import available_backends
from winhance_unattend.validation import validate_configuration


def cmd_compile(args: argparse.Namespace) -> int:
    """Handler for 'winhance-unattend compile' command.

    Args:
        args: Parsed command-line arguments containing the configuration
            and catalog paths, output path, backend options and flags.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    config_path = Path(args.config).resolve()
    catalog_path = Path(args.catalog).resolve()
    output_path = Path(args.output or SCRIPT_NAME).resolve()

    print(f"Compiling configuration: {config_path}")
    print(f"Catalog: {catalog_path}")
    print()

    try:
        result = compile_files(
            config_path,
            catalog_path,
            output_path=output_path,
            power_snapshot=Path(args.power_snapshot) if args.power_snapshot else None,
            backend=args.backend,
            powershell=args.powershell,
            skip_validation=args.skip_validation,
            logger=logger,
        )
    except ScriptSyntaxError as err:
        print(f"Error: {err}")
        for line in err.diagnostics:
            print(f"  [X] {line}")
        if args.verbose or args.debug:
            import traceback

            traceback.print_exc()
        return 1
    except UnattendError as err:
        # ConfigError, ValidatorUnavailableError and collaborator failures
        print(f"Error: {err}")
        if args.verbose or args.debug:
            import traceback

            traceback.print_exc()
        return 1

    print("=" * 70)
    print("COMPILE RESULTS")
    print("=" * 70)
    print(f"Output:            {result.output_path}")
    print(f"System Sections:   {result.system_sections}")
    print(f"User Sections:     {result.user_sections}")
    print(f"Power Settings:    {result.power_settings}")
    print(f"App Removal:       {'yes' if result.app_removal else 'no'}")
    print(f"Syntax Validated:  {'yes' if result.validated else 'skipped'}")
    print(f"Status:            {result.status}")
    print("=" * 70)

    if result.warnings:
        print()
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")

    print()
    print("[SUCCESS] Script compiled successfully!")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'winhance-unattend validate' command.

    Checks the configuration against the catalog without compiling and
    without PowerShell. Useful as a CI pre-check.

    Args:
        args: Parsed command-line arguments containing the configuration
            and catalog paths and the verbose flag.

    Returns:
        Exit code (0 for valid configuration, 1 for invalid).
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    config_path = Path(args.config).resolve()
    catalog_path = Path(args.catalog).resolve()

    print(f"Validating configuration: {config_path}")
    print()

    result = validate_configuration(config_path, catalog_path, verbose=args.verbose)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Configuration:  {result['config_path']}")
    print(f"Status:         {result['status'].upper()}")
    print(f"Settings:       {result['setting_count']}")
    print()

    if result["warnings"]:
        print(f"Warnings ({len(result['warnings'])}):")
        for warning in result["warnings"]:
            print(f"  [WARNING] {warning}")
        print()

    if result["errors"]:
        print(f"Errors ({len(result['errors'])}):")
        for error in result["errors"]:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result["status"] == "valid":
        print()
        print("[SUCCESS] Configuration is valid!")
        return 0
    print()
    print(
        f"[FAILED] Configuration validation failed with {len(result['errors'])} error(s)."
    )
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="winhance-unattend",
        description="Compile Winhance configurations into unattended PowerShell scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"winhance-unattend {version('winhance-unattend')}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'compile' command
    parser_compile = subparsers.add_parser(
        "compile",
        help="Compile a configuration into a PowerShell script",
        description="Build the two-phase unattended script and check it with the PowerShell parser.",
    )
    parser_compile.add_argument(
        "config",
        help="Path to the configuration YAML/JSON file",
    )
    parser_compile.add_argument(
        "--catalog",
        required=True,
        help="Path to the setting catalog YAML/JSON file",
    )
    parser_compile.add_argument(
        "-o",
        "--output",
        default=None,
        help=f"Output script path (default: ./{SCRIPT_NAME})",
    )
    parser_compile.add_argument(
        "--power-snapshot",
        default=None,
        help="Power snapshot YAML used instead of live powercfg queries",
    )
    parser_compile.add_argument(
        "--backend",
        choices=available_backends(),
        default=None,
        help="Service backend for power and hardware data (default: auto)",
    )
    parser_compile.add_argument(
        "--powershell",
        default=None,
        help="PowerShell executable used for validation (default: pwsh, then powershell)",
    )
    parser_compile.add_argument(
        "--skip-validation",
        action="store_true",
        help="Do not run the PowerShell syntax check",
    )
    parser_compile.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser_compile.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )
    parser_compile.set_defaults(func=cmd_compile)

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Check a configuration against the catalog (no compilation)",
        description="Report unknown features, unknown setting ids and selection indexes missing from the catalog.",
    )
    parser_validate.add_argument(
        "config",
        help="Path to the configuration YAML/JSON file",
    )
    parser_validate.add_argument(
        "--catalog",
        required=True,
        help="Path to the setting catalog YAML/JSON file",
    )
    parser_validate.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show validation progress and details",
    )
    parser_validate.set_defaults(func=cmd_validate)

    return parser


def main() -> None:
    """Main entry point for the winhance-unattend CLI.

    This function is registered as the 'winhance-unattend' console script in
    pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args()

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
