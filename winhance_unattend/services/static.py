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

"""Fixed-data collaborators.

Used when compiling on a machine that is not the reference machine (any
non-Windows host, CI) and in tests. The data normally comes from a power
snapshot document; see winhance_unattend.config.load_power_snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from winhance_unattend.services.base import (
    PowerPlanInfo,
    ServiceBackend,
    register_backend,
)


class StaticPowerSettingsService:
    """Power service answering from fixed data.

    Values are returned for any plan GUID; a snapshot describes one plan.
    """

    def __init__(
        self,
        active_plan: PowerPlanInfo | None = None,
        settings: Mapping[str, tuple[int | None, int | None]] | None = None,
    ) -> None:
        self._active_plan = active_plan
        self._settings = dict(settings or {})
        self.calls: list[str] = []

    def get_active_power_plan(self) -> PowerPlanInfo | None:
        self.calls.append("get_active_power_plan")
        return self._active_plan

    def get_all_power_settings_acdc(
        self, plan_guid: str
    ) -> dict[str, tuple[int | None, int | None]]:
        self.calls.append("get_all_power_settings_acdc")
        return dict(self._settings)


class StaticHardwareService:
    """Hardware service answering from fixed data."""

    def __init__(self, has_battery: bool = False) -> None:
        self._has_battery = has_battery
        self.calls: list[str] = []

    def has_battery(self) -> bool:
        self.calls.append("has_battery")
        return self._has_battery


def _static_backend(snapshot: Path | None = None, **_: object) -> ServiceBackend:
    if snapshot is None:
        return ServiceBackend(
            power=StaticPowerSettingsService(),
            hardware=StaticHardwareService(),
        )

    from winhance_unattend.config import load_power_snapshot

    data = load_power_snapshot(snapshot)
    return ServiceBackend(
        power=StaticPowerSettingsService(data.active_plan, data.acdc_values),
        hardware=StaticHardwareService(data.has_battery),
    )


register_backend("static", _static_backend)
