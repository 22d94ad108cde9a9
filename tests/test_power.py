"""
Tests for winhance_unattend.sections.power module.
"""

from __future__ import annotations

import pytest

from winhance_unattend.powershell import ScriptBuffer
from winhance_unattend.resolver import PowerPlanChoice, PowerSettingValue
from winhance_unattend.sections.power import emit_power_section

# All tests in this file are unit tests (fast, mocked)
pytestmark = pytest.mark.unit

PLAN = PowerPlanChoice(
    guid="57696e68-616e-6365-506f-776572000000", name="Winhance Power Plan"
)
DISK_TIMEOUT = PowerSettingValue(
    subgroup_guid="0012ee47-9041-4b5d-9b77-535fba8b1442",
    setting_guid="6738e2c4-e8a5-4a42-b16a-e040e769756e",
    ac_value=1200,
    dc_value=600,
    description="Turn off hard disk after",
)


def _text(plan, values):
    buf = ScriptBuffer()
    written = emit_power_section(buf, plan, values)
    return written, "\n".join(buf.lines())


class TestEmitPowerSection:
    """Tests for emit_power_section."""

    def test_nothing_to_write(self):
        """Test that no plan and no values omit the section entirely."""
        written, text = _text(None, [])

        assert written is False
        assert text == ""

    def test_plan_and_values(self):
        """Test the full section: creation, hidden settings, values, activation."""
        written, text = _text(PLAN, [DISK_TIMEOUT])

        assert written is True
        assert "# POWER PLAN & POWERCFG SETTINGS" in text
        assert "$customPlanGuid = '57696e68-616e-6365-506f-776572000000'" in text
        assert "powercfg /duplicatescheme $scheme.Guid $customPlanGuid" in text
        assert "powercfg /changename $customPlanGuid 'Winhance Power Plan'" in text
        assert "$hiddenSettings = @(" in text
        assert (
            "@{ S='0012ee47-9041-4b5d-9b77-535fba8b1442'; "
            "G='6738e2c4-e8a5-4a42-b16a-e040e769756e'; AC=1200; DC=600; "
            "N='Turn off hard disk after' }" in text
        )
        assert "$targetPlanGuid = '57696e68-616e-6365-506f-776572000000'" in text
        assert "powercfg /setactive '57696e68-616e-6365-506f-776572000000' 2>$null" in text

    def test_block_order(self):
        """Test that the plan exists before values are written and is activated last."""
        _, text = _text(PLAN, [DISK_TIMEOUT])

        creation = text.index("$customPlanGuid =")
        values = text.index("$powerSettings = @(")
        activation = text.index("powercfg /setactive")
        assert creation < values < activation

    def test_values_without_plan(self):
        """Test that values alone target the current scheme and skip creation."""
        written, text = _text(None, [DISK_TIMEOUT])

        assert written is True
        assert "$targetPlanGuid = 'SCHEME_CURRENT'" in text
        assert "$customPlanGuid" not in text
        assert "powercfg /setactive" not in text

    def test_plan_without_values(self):
        """Test that a plan alone is created and activated without value blocks."""
        _, text = _text(PLAN, [])

        assert "$customPlanGuid" in text
        assert "$hiddenSettings" not in text
        assert "$powerSettings" not in text
        assert "powercfg /setactive" in text

    def test_last_entry_has_no_comma(self):
        """Test the PowerShell array syntax of the value table."""
        second = PowerSettingValue("sub", "set", 1, 0, "Other")
        _, text = _text(None, [DISK_TIMEOUT, second])

        assert "N='Turn off hard disk after' }," in text
        assert "N='Other' }\n" in text

    def test_plan_name_escaped(self):
        """Test that quotes in the plan name are escaped."""
        _, text = _text(PowerPlanChoice(guid="g", name="Bob's Plan"), [])

        assert "powercfg /changename $customPlanGuid 'Bob''s Plan'" in text
