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

"""Registry command emission.

Given a resolved value and a registry target, writes the one PowerShell
statement that realizes it. Dispatch is on the target's mode:

1. BitPatch   -> Set-BinaryBit (set or clear the masked bits of one byte)
2. BytePatch  -> Set-BinaryByte (overwrite one byte, keep the others)
3. GuidSubkey -> Remove-RegistryKey / New-RegistryKey
4. PlainValue with a None value -> Remove-RegistryValue
5. PlainValue otherwise -> Set-RegistryValue with a kind-formatted literal

Every helper called here is defined in the script preamble and creates
the target key when it is missing (or tests for it before deleting), so
each statement is safe on a machine in an unknown prior state.

Example:
    Emit a DWORD set:
        ```python
        from winhance_unattend.emitter import emit_registry_command
        from winhance_unattend.models import RegistryTarget
        from winhance_unattend.powershell import ScriptBuffer

        buf = ScriptBuffer()
        target = RegistryTarget(
            key_path="HKEY_CURRENT_USER\\\\Software\\\\Foo",
            value_name="Bar",
            value_kind="DWord",
        )
        emit_registry_command(buf, target, 1, "Enable Bar")
        # Set-RegistryValue -Path 'HKCU:\\Software\\Foo' -Name 'Bar' -Type 'DWord' ...
        ```
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from winhance_unattend.logging import Logger, get_global_logger
from winhance_unattend.models import (
    BitPatch,
    BytePatch,
    GuidSubkey,
    PlainValue,
    RegistryTarget,
)
from winhance_unattend.powershell import (
    ScriptBuffer,
    convert_key_path,
    format_byte,
    format_value,
    quote,
    registry_type_name,
)
from winhance_unattend.resolver import ResolvedTarget

_FALSE_STRINGS = frozenset({"", "0", "false", "off", "no"})


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def emit_registry_command(
    buffer: ScriptBuffer,
    target: RegistryTarget,
    value: Any,
    description: str,
    key_path: str | None = None,
    logger: Logger | None = None,
) -> None:
    """Write the statement that applies ``value`` to ``target``.

    Args:
        buffer: Destination buffer.
        target: Registry target descriptor.
        value: Resolved value. None means delete (value or subkey).
        description: Setting description used in the script's log line.
        key_path: Target key in PowerShell drive syntax. Derived from the
            target when omitted.
        logger: Receives a warning when a byte patch value is malformed.

    Raises:
        TypeError: If the target carries an unknown mode object.
    """
    if logger is None:
        logger = get_global_logger()

    path = quote(key_path or convert_key_path(target.key_path))
    desc = quote(description)
    mode = target.mode

    if isinstance(mode, BitPatch):
        set_bit = "$true" if _is_truthy(value) else "$false"
        buffer.line(
            f"Set-BinaryBit -Path {path} -Name {quote(target.value_name)} "
            f"-ByteIndex {mode.byte_index} -BitMask 0x{mode.bit_mask:02X} "
            f"-SetBit {set_bit} -Description {desc}"
        )
    elif isinstance(mode, BytePatch):
        literal, ok = format_byte(value)
        if not ok:
            logger.warning(
                "EMIT",
                f"Byte patch value {value!r} for {target.key_path}\\"
                f"{target.value_name} is not a byte; writing 0x00",
            )
        buffer.line(
            f"Set-BinaryByte -Path {path} -Name {quote(target.value_name)} "
            f"-ByteIndex {mode.byte_index} -ByteValue {literal} -Description {desc}"
        )
    elif isinstance(mode, GuidSubkey):
        if value is None:
            buffer.line(f"Remove-RegistryKey -Path {path} -Description {desc}")
        elif value == "":
            buffer.line(f"New-RegistryKey -Path {path} -Description {desc}")
            buffer.line(
                f"Set-RegistryValue -Path {path} -Name '(Default)' -Type 'String' "
                f"-Value '' -Description {desc}"
            )
        else:
            buffer.line(f"New-RegistryKey -Path {path} -Description {desc}")
    elif isinstance(mode, PlainValue):
        name = quote(target.value_name)
        if value is None:
            buffer.line(
                f"Remove-RegistryValue -Path {path} -Name {name} -Description {desc}"
            )
        elif value == "":
            buffer.line(
                f"Set-RegistryValue -Path {path} -Name {name} -Type 'String' "
                f"-Value '' -Description {desc}"
            )
        else:
            kind = registry_type_name(target.value_kind)
            literal = format_value(value, target.value_kind)
            buffer.line(
                f"Set-RegistryValue -Path {path} -Name {name} -Type '{kind}' "
                f"-Value {literal} -Description {desc}"
            )
    else:
        raise TypeError(f"unsupported registry target mode: {mode!r}")


def emit_resolved_targets(
    buffer: ScriptBuffer,
    resolved: Iterable[ResolvedTarget],
    description: str,
    logger: Logger | None = None,
) -> int:
    """Emit every resolved target; return how many statements were written."""
    count = 0
    for item in resolved:
        emit_registry_command(
            buffer, item.target, item.value, description, logger=logger
        )
        count += 1
    return count
