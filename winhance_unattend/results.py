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

"""Public API return types for winhance-unattend.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from winhance_unattend.core import compile_script
        from winhance_unattend.results import CompileResult

        result: CompileResult = compile_script(config, catalog, power, hardware, validator)
        print(len(result.warnings))
        ```

Note:
    Only public API return types belong in this module. Domain types
    (like PowerSnapshot) stay next to the logic that uses them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CompileResult:
    """Result from compiling a configuration into a script.

    Attributes:
        script: Complete script text.
        warnings: Every lookup anomaly seen during compilation, each reported
            once, as "[PREFIX] message".
        system_sections: Feature sections written to the system phase.
        user_sections: Feature sections written to the user phase.
        power_settings: AC/DC setting pairs baked into the script.
        app_removal: Whether the app removal block was written.
        validated: Whether the script passed the PowerShell parser. False
            only when validation was skipped.
        output_path: Where the script was written, if it was.
        status: Always "success"; failures raise instead.
    """

    script: str
    warnings: tuple[str, ...]
    system_sections: int
    user_sections: int
    power_settings: int
    app_removal: bool
    validated: bool
    output_path: Path | None = None
    status: str = "success"
