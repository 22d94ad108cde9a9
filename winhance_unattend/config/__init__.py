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

"""Catalog, configuration and power snapshot loading.

Public API:

- load_catalog: Load the setting catalog
- load_configuration: Load the user's unified configuration
- load_power_snapshot: Load captured power plan data
- parse_setting_definition / parse_registry_target: Document -> model

Example:
    Basic usage:

        from pathlib import Path
        from winhance_unattend.config import load_catalog, load_configuration

        catalog = load_catalog(Path("catalog.yaml"))
        config = load_configuration(Path("config.yaml"))

"""

from .loader import (
    load_catalog,
    load_configuration,
    load_power_snapshot,
    parse_catalog,
    parse_configuration,
    parse_registry_target,
    parse_setting_definition,
)

__all__ = [
    "load_catalog",
    "load_configuration",
    "load_power_snapshot",
    "parse_catalog",
    "parse_configuration",
    "parse_registry_target",
    "parse_setting_definition",
]
