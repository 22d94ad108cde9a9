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

"""Collaborator protocols and backend registry.

The compiler reads live machine data through three collaborators:

- PowerSettingsQueryService: the active power plan and its AC/DC values
- HardwareDetectionService: capability probes (battery presence)
- SyntaxValidator: the PowerShell parser check run on the finished script

Each is a Protocol, so any object with matching methods can be passed to
winhance_unattend.core.compile_script. Tests pass fixture objects;
the CLI picks a backend by name from the registry below.

Backends:
    static : Fixed data, optionally loaded from a YAML power snapshot
    windows : Live queries through powercfg and CIM (Windows only)

Example:
    Registering a custom backend:
        ```python
        from winhance_unattend.services.base import ServiceBackend, register_backend
        from winhance_unattend.services.static import (
            StaticHardwareService,
            StaticPowerSettingsService,
        )

        def lab_backend(**kwargs):
            return ServiceBackend(
                power=StaticPowerSettingsService(),
                hardware=StaticHardwareService(has_battery=True),
            )

        register_backend("lab", lab_backend)
        ```
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from winhance_unattend.exceptions import ConfigError

# -------------------------------
# Collaborator Protocols
# -------------------------------


@dataclass(frozen=True)
class PowerPlanInfo:
    """A power plan as reported by the power service."""

    guid: str
    name: str


class PowerSettingsQueryService(Protocol):
    """Reads power plan state from the compiling machine."""

    def get_active_power_plan(self) -> PowerPlanInfo | None:
        """Return the active plan, or None when it cannot be determined."""
        ...

    def get_all_power_settings_acdc(
        self, plan_guid: str
    ) -> Mapping[str, tuple[int | None, int | None]]:
        """Return setting GUID -> (AC index, DC index) for a plan.

        Args:
            plan_guid: Plan to read.

        Returns:
            Values keyed by setting GUID. A side that the plan does not
            define is None.
        """
        ...


class HardwareDetectionService(Protocol):
    """Hardware capability probes."""

    def has_battery(self) -> bool:
        ...


class SyntaxValidator(Protocol):
    """Checks a finished script without running it."""

    def validate_syntax(self, script_text: str) -> None:
        """Parse ``script_text``.

        Raises:
            ScriptSyntaxError: If the parser reports an error.
            ValidatorUnavailableError: If no parser could be run.
        """
        ...


# -------------------------------
# Backend Registry
# -------------------------------


@dataclass(frozen=True)
class ServiceBackend:
    """The data collaborators a compilation reads from."""

    power: PowerSettingsQueryService
    hardware: HardwareDetectionService


BackendFactory = Callable[..., ServiceBackend]

_BACKEND_REGISTRY: dict[str, BackendFactory] = {}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register a backend factory by name.

    Registering an existing name replaces it, which lets tests substitute
    fixtures.

    Args:
        name: Backend name (e.g., "static", "windows").
        factory: Callable returning a ServiceBackend. Keyword arguments
            given to get_backend() are passed through.
    """
    _BACKEND_REGISTRY[name] = factory


def get_backend(name: str, **options: Any) -> ServiceBackend:
    """Build a backend by name.

    Args:
        name: A name registered with register_backend().
        **options: Backend specific options (e.g., ``snapshot`` for the
            static backend).

    Returns:
        A new ServiceBackend.

    Raises:
        ConfigError: If the name is not registered.
    """
    if name not in _BACKEND_REGISTRY:
        available = ", ".join(sorted(_BACKEND_REGISTRY))
        raise ConfigError(
            f"Unknown service backend: {name!r}. Available: {available or '(none)'}"
        )
    return _BACKEND_REGISTRY[name](**options)


def available_backends() -> list[str]:
    return sorted(_BACKEND_REGISTRY)
