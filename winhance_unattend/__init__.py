"""
winhance-unattend - Unattended Winhance script compiler

A Python-based CLI tool that turns a Winhance configuration into a single
PowerShell script for unattended Windows installs (autounattend.xml
specialize pass or a first-logon command).

winhance-unattend provides:
  - Declarative YAML/JSON catalog of registry, task and powercfg settings
  - Two-phase script output: machine-wide (SYSTEM) and per-user (HKCU)
  - A logon scheduled task that bridges the two phases
  - Bit- and byte-level patching of binary registry values
  - Power plan creation with AC/DC values baked in from a reference machine
  - App, capability and optional feature removal
  - Syntax check of the finished script with PowerShell's own parser

Quick Start
-----------
Compile a configuration:

    $ winhance-unattend compile config.yaml --catalog catalog.yaml

Check a configuration without compiling:

    $ winhance-unattend validate config.yaml --catalog catalog.yaml

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    Compilation orchestration.
config : package
    Catalog, configuration and power snapshot loading.
resolver : module
    Selection -> concrete registry values.
emitter : module
    Registry statement emission.
sections : package
    Feature, power, app removal, Start Menu and bootstrap blocks.
assembler : module
    Two-phase script assembly.
services : package
    Power, hardware and syntax collaborators.
validation : module
    PowerShell syntax check and configuration check.

Public API
----------
    from winhance_unattend.core import compile_script, compile_files
    from winhance_unattend.config import load_catalog, load_configuration
    from winhance_unattend.validation import validate_configuration

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Unattended Winhance script compiler"

# Re-export commonly used functions for convenience
from winhance_unattend.config import load_catalog, load_configuration
from winhance_unattend.core import compile_files, compile_script
from winhance_unattend.validation import validate_configuration

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "compile_files",
    "compile_script",
    "load_catalog",
    "load_configuration",
    "validate_configuration",
]
