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

"""External collaborators for the compiler.

Backends self-register on import:

    static : StaticPowerSettingsService + StaticHardwareService
    windows : PowercfgQueryService + CimHardwareService

Example:
    Load a backend by name:

        from winhance_unattend.services import get_backend

        backend = get_backend("static", snapshot=Path("power.yaml"))
        plan = backend.power.get_active_power_plan()
"""

# Import backend modules to trigger self-registration
from . import (
    powercfg,  # noqa: F401
    static,  # noqa: F401
)
from .base import (
    HardwareDetectionService,
    PowerPlanInfo,
    PowerSettingsQueryService,
    ServiceBackend,
    SyntaxValidator,
    available_backends,
    get_backend,
    register_backend,
)
from .powercfg import CimHardwareService, PowercfgQueryService
from .static import StaticHardwareService, StaticPowerSettingsService

__all__ = [
    "CimHardwareService",
    "HardwareDetectionService",
    "PowerPlanInfo",
    "PowerSettingsQueryService",
    "PowercfgQueryService",
    "ServiceBackend",
    "StaticHardwareService",
    "StaticPowerSettingsService",
    "SyntaxValidator",
    "available_backends",
    "get_backend",
    "register_backend",
]
