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

"""Script assembly.

Builds the complete two-phase script from a configuration, the catalog
and pre-fetched power data. Assembly performs no I/O; live data arrives
in a PowerSnapshot gathered by winhance_unattend.core.

Script Layout:

    <comment-based help + param([switch]$UserCustomizations)>
    <Write-Log setup>
    <helper functions>

    if (-not $UserCustomizations) {
        <scripts directory>
        <app removal>
        <power plan & powercfg settings>
        <Optimize features, system entries>
        <Customize features, system entries>
        <Start Menu layout>
        <user customizations logon task>
        <system-wide placeholder>
    }

    if ($UserCustomizations) {
        <SYSTEM identity fallback, HKCU remap, marker check>
        if (-not $alreadyApplied) {
            <Optimize features, user entries>
            <Customize features, user entries>
            <user placeholder>
            <marker>
        }
        <HKCU restore, task removal, restart>
    }

    <completion footer>

Each phase body is built in its own buffer and nested into the document at
one indent level, so a section never needs to know where it ends up.

Example:
    Assemble without live data:
        ```python
        from winhance_unattend.assembler import PowerSnapshot, ScriptAssembler

        assembler = ScriptAssembler(catalog)
        text = assembler.assemble(config, PowerSnapshot())
        ```
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from winhance_unattend.logging import Logger, get_global_logger
from winhance_unattend.models import Catalog, Phase, UnifiedConfiguration
from winhance_unattend.powershell import ScriptBuffer
from winhance_unattend.resolver import (
    POWER_PLAN_SETTING_ID,
    PowerPlanChoice,
    PowerSettingValue,
    collect_power_values,
    resolve_power_plan,
)
from winhance_unattend.sections import (
    apps,
    bootstrap,
    extras,
    features,
    power,
    preamble,
    start_menu,
)
from winhance_unattend.services.base import PowerPlanInfo

POWER_FEATURE_ID = "power"


@dataclass(frozen=True)
class PowerSnapshot:
    """Live power data read once per compilation.

    Attributes:
        active_plan: Active plan on the compiling machine.
        acdc_values: Setting GUID -> (AC index, DC index) of that plan.
        has_battery: Battery presence on the compiling machine.
    """

    active_plan: PowerPlanInfo | None = None
    acdc_values: Mapping[str, tuple[int | None, int | None]] = field(
        default_factory=dict
    )
    has_battery: bool = False


class ScriptAssembler:
    """Assemble the two-phase script for one configuration.

    An assembler holds no per-run state besides the counters of its last
    run; every call to assemble() builds fresh buffers.

    Attributes:
        catalog: Setting catalog.
        logger: Receives lookup warnings.
        script_path: Path the user-phase logon task runs the script from.
        log_path: Log file the script writes to.
        sections_written: Feature sections written by the last run, per phase.
        power_settings_written: AC/DC pairs baked in by the last run.
        removal_emitted: Whether the last run wrote the app removal block.
    """

    def __init__(
        self,
        catalog: Catalog,
        logger: Logger | None = None,
        script_path: str = preamble.SCRIPT_PATH,
        log_path: str = preamble.LOG_PATH,
    ) -> None:
        self.catalog = catalog
        self.logger = logger if logger is not None else get_global_logger()
        self.script_path = script_path
        self.log_path = log_path
        self.sections_written: dict[Phase, int] = {}
        self.power_settings_written = 0
        self.removal_emitted = False

    def assemble(
        self,
        config: UnifiedConfiguration,
        power_snapshot: PowerSnapshot | None = None,
    ) -> str:
        """Return the complete script text.

        Args:
            config: User selections.
            power_snapshot: Pre-fetched power data. None means no live data;
                only a power plan selection can then produce power output.
        """
        if power_snapshot is None:
            power_snapshot = PowerSnapshot()

        self.sections_written = {}
        self.power_settings_written = 0
        self.removal_emitted = False

        document = ScriptBuffer()
        preamble.emit_header(document, self.log_path)
        preamble.emit_logging_setup(document, self.log_path)
        preamble.emit_helper_functions(document)

        document.blank()
        document.line("if (-not $UserCustomizations) {")
        with document.indented():
            document.extend(self.build_system_phase(config, power_snapshot))
        document.line("}")
        document.blank()

        document.line("if ($UserCustomizations) {")
        with document.indented():
            document.extend(self.build_user_phase(config))
        document.line("}")

        preamble.emit_completion_footer(document)
        return document.text()

    # -------------------------------
    # Phase bodies
    # -------------------------------

    def build_system_phase(
        self, config: UnifiedConfiguration, power_snapshot: PowerSnapshot
    ) -> ScriptBuffer:
        body = ScriptBuffer()
        extras.emit_scripts_directory(body)

        if config.windows_apps:
            self.removal_emitted = apps.emit_app_removal(
                body, config.windows_apps, self.logger
            )

        plan = self.find_power_plan(config)
        values = self.collect_power_settings(power_snapshot)
        power.emit_power_section(body, plan, values)
        self.power_settings_written = len(values)

        self.sections_written[Phase.SYSTEM] = self._emit_groups(
            body, config, Phase.SYSTEM
        )

        start_menu.emit_start_menu_layout(body)
        bootstrap.emit_user_bootstrap_task(body, self.script_path)
        extras.emit_custom_script_placeholder(body, "SYSTEM WIDE")
        return body

    def build_user_phase(self, config: UnifiedConfiguration) -> ScriptBuffer:
        body = ScriptBuffer()
        bootstrap.emit_user_phase_prologue(body)

        body.line("if (-not $alreadyApplied) {")
        with body.indented():
            self.sections_written[Phase.USER] = self._emit_groups(
                body, config, Phase.USER
            )
            extras.emit_custom_script_placeholder(body, "USER SPECIFIC")
            bootstrap.emit_applied_marker(body)
        body.line("}")

        bootstrap.emit_user_phase_epilogue(body)
        return body

    def _emit_groups(
        self, body: ScriptBuffer, config: UnifiedConfiguration, phase: Phase
    ) -> int:
        written = 0
        for group in config.groups:
            if not group.features:
                continue
            written += features.emit_feature_group(
                body, group, self.catalog, phase, self.logger
            )
        return written

    # -------------------------------
    # Power inputs
    # -------------------------------

    def find_power_plan(self, config: UnifiedConfiguration) -> PowerPlanChoice | None:
        section = config.optimize.get(POWER_FEATURE_ID)
        if section is None or not section.is_included:
            return None
        return resolve_power_plan(section.get(POWER_PLAN_SETTING_ID))

    def collect_power_settings(
        self, power_snapshot: PowerSnapshot
    ) -> list[PowerSettingValue]:
        definitions = self.catalog.definitions(POWER_FEATURE_ID)
        if not definitions:
            return []
        return collect_power_values(
            definitions,
            power_snapshot.acdc_values,
            power_snapshot.has_battery,
            self.logger,
        )
