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

"""Script section emitters.

Each module writes one region of the generated script into a
ScriptBuffer. The assembler decides which phase buffer a section goes to.

Catalog-driven:
    features : Feature groups, per phase (registry, tasks, .reg imports)
    power : Power plan creation, hidden settings, AC/DC values

Fixed blocks:
    preamble : Header, Write-Log, helper functions, footer
    apps : App, capability and optional feature removal
    start_menu : Start Menu layout reset, branched on the OS build
    bootstrap : User-phase logon task and the user-phase wrapper
    extras : Hibernation, wallpaper, update hardening, placeholders
"""
