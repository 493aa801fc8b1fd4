# tests/unit/telemetry/test_normalizer.py
"""Tests for the telemetry normalizer.

Level 1 in the dependency tree: depends on the equipment registry only.

Test Coverage:
- Canonical key derivation (registry, temperature rule, generic rule)
- Positional power readings and their precedence over named aliases
- First-seen-wins alias collapse
- Sensor fault handling and the flattened '<key>Raw' view
- Malformed record counting
- Purity and idempotence
"""

import logging

import pytest

from brewnode.equipment.registry import (
    CommandRoute,
    DEFAULT_REGISTRY,
    EquipmentUnit,
    SensorCategory,
)
from brewnode.telemetry.normalizer import (
    DEFAULT_POSITIONAL_KEYS,
    TelemetryNormalizer,
    TelemetrySnapshot,
    derive_key,
    generic_key,
    normalize,
    temperature_key,
)


# ================================================================
# KEY DERIVATION
# ================================================================
class TestKeyDerivation:
    """Test derive_key() and its fallbacks."""

    def test_registry_name_wins(self):
        """Test that a registered name resolves through the registry.

        WHY: Registry keys take precedence over the temperature and generic
        rules; a valve must never end up under a generic key.
        """
        assert derive_key("Valve Chill Wort-out") == (
            "chillWortOut",
            SensorCategory.VALVE,
        )

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("HLT Temperature", "tempHlt"),
            ("Boil Temp", "tempBoil"),
            ("temp Sparge Water", "tempSpargeWater"),
        ],
    )
    def test_temperature_rule(self, name, expected):
        """Test temperature names not in the registry.

        WHY: Extra sensors get predictable temp* keys instead of
        free-form generic keys.
        """
        assert temperature_key(name) == expected
        assert derive_key(name) == (expected, SensorCategory.TEMPERATURE)

    def test_temperature_rule_ignores_other_names(self):
        """Test that the temperature rule needs a temperature word.

        WHY: Otherwise every unknown sensor would be filed as a temperature.
        """
        assert temperature_key("Flow Rate") is None

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Flow Rate", "flowRate"),
            ("  pH  meter ", "phMeter"),
            ("CO2-Level", "co2level"),
        ],
    )
    def test_generic_rule(self, name, expected):
        """Test camelCase keys for unknown names.

        WHY: Unknown sensors are still shown; their keys must be stable
        across polls so the dashboard does not reshuffle.
        """
        assert generic_key(name) == expected

    def test_unknown_name_gets_other_category(self):
        """Test that an unregistered, non-temperature name is categorised OTHER.

        WHY: OTHER readings are displayed but never counted as pumps,
        valves or heaters in the status summary.
        """
        assert derive_key("Flow Rate") == ("flowRate", SensorCategory.OTHER)


# ================================================================
# POSITIONAL READINGS
# ================================================================
class TestPositionalReadings:
    """Test bare-number power readings."""

    def test_power_indexes(self, make_payload):
        """Test that indexes 9-12 map to the four power readings."""
        snapshot = normalize(make_payload(40.0, 150.0, 0.0, 2400.0))

        assert snapshot.value("fanPower") == 40.0
        assert snapshot.value("glycolHeaterPower") == 150.0
        assert snapshot.value("glycolChillerPower") == 0.0
        assert snapshot.value("kettleHeaterPower") == 2400.0
        assert snapshot["fanPower"].source == "#9"
        assert snapshot["fanPower"].category == SensorCategory.FAN
        assert snapshot["kettleHeaterPower"].category == SensorCategory.HEATER

    def test_positional_beats_named_alias(self, make_payload):
        """Test that a named 'Fan' record cannot overwrite fanPower.

        WHY: The positional power value is authoritative; the named
        status record is a 1/0 flag that would hide the real draw.
        """
        payload = make_payload(fan=40.0, named=[{"name": "Fan", "value": "Off"}])

        snapshot = normalize(payload)

        assert snapshot.value("fanPower") == 40.0
        assert snapshot.dropped_aliases == 1
        assert "fan" not in snapshot

    def test_unmapped_positional_number_is_dropped(self, make_payload):
        """Test that a bare number outside the positional table is dropped.

        WHY: A number without a known index has no identity; guessing one
        would attach it to the wrong unit.
        """
        payload = make_payload(tail=[7.5])

        snapshot = normalize(payload)

        assert snapshot.malformed_count == 1
        assert snapshot.dropped[0].index == 13
        assert snapshot.dropped[0].reason == "unmapped positional number"

    def test_custom_positional_table(self):
        """Test a positional table supplied by configuration.

        WHY: Firmware revisions move the power slots; the table must be
        replaceable without touching the normalizer.
        """
        snapshot = normalize([12.0, 3.0], positional_keys={1: "fanPower"})

        assert list(snapshot) == ["fanPower"]
        assert snapshot.value("fanPower") == 3.0

    def test_default_table_is_four_power_readings(self):
        """Test the default positional table.

        WHY: The controller reports exactly four power draws at 9-12.
        """
        assert DEFAULT_POSITIONAL_KEYS == {
            9: "fanPower",
            10: "glycolHeaterPower",
            11: "glycolChillerPower",
            12: "kettleHeaterPower",
        }


# ================================================================
# ALIAS COLLAPSE
# ================================================================
class TestAliasCollapse:
    """Test that one unit produces exactly one key."""

    def test_first_alias_wins(self):
        """Test two spellings of the mash-in valve in one payload.

        WHY: Listing 'Valve Mash-in' and 'mashInValve' as two valves
        tells the operator there are two valves when there is one.
        """
        payload = [
            {"name": "Valve Mash-in", "value": "Open"},
            {"name": "mashInValve", "value": "Closed"},
        ]

        snapshot = normalize(payload)

        assert list(snapshot) == ["mashIn"]
        assert snapshot.value("mashIn") == 1.0
        assert snapshot["mashIn"].source == "Valve Mash-in"
        assert snapshot.dropped_aliases == 1

    def test_every_key_unique(self, make_payload):
        """Test a payload full of duplicate spellings.

        WHY: Each unit must appear once, whichever spelling arrives first.
        """
        payload = make_payload(
            named=[
                {"name": "Temp Kettle", "value": 64.0},
                {"name": "Kettle Temp", "value": 99.0},
                {"name": "Pump Mash", "value": "On"},
                {"name": "Mash Pump", "value": "Off"},
                {"name": "chillerWortIn", "value": "Open"},
                {"name": "valveChillWortIn", "value": "Closed"},
            ]
        )

        snapshot = normalize(payload)

        assert snapshot.value("tempKettle") == 64.0
        assert snapshot.value("mashPump") == 1.0
        assert snapshot.value("chillWortIn") == 1.0
        assert snapshot.dropped_aliases == 3
        assert len(snapshot) == len(set(snapshot))

    def test_sensor_on_actuator_does_not_shadow_it(self):
        """Test a sensor named after the pump it is mounted on.

        WHY: First-seen wins, so a sensor resolving to the pump would hide
        the pump's own status record behind a temperature.
        """
        payload = [
            {"name": "Kettle Pump Temp", "value": 65.0},
            {"name": "Pump Kettle", "value": "Off"},
        ]

        snapshot = normalize(payload)

        assert snapshot.value("tempKettlePump") == 65.0
        assert snapshot["tempKettlePump"].category == SensorCategory.TEMPERATURE
        assert snapshot.value("kettlePump") == 0.0
        assert snapshot.dropped_aliases == 0


# ================================================================
# SENSOR FAULTS
# ================================================================
class TestSensorFaults:
    """Test disconnected temperature sensor handling."""

    @pytest.mark.parametrize("sentinel", [-127.0, -273.0])
    def test_fault_sentinel(self, sentinel):
        """Test that a disconnected sensor reads as unavailable.

        WHY: -127 rendered as a temperature looks like a freezing mash.
        """
        snapshot = normalize([{"name": "Temp Mash", "value": sentinel}])

        reading = snapshot["tempMash"]
        assert reading.value is None
        assert reading.raw_error_value == sentinel
        assert reading.sensor_fault is True
        assert snapshot.sensor_faults() == [reading]

    def test_flat_exposes_raw_value(self):
        """Test the flattened view of a faulted sensor.

        WHY: The dashboard labels faults as 'Error (<raw>°C)' and needs the
        raw sentinel next to the None value.
        """
        snapshot = normalize(
            [
                {"name": "Temp Mash", "value": -127},
                {"name": "Temp Kettle", "value": 66.0},
            ]
        )

        assert snapshot.flat() == {
            "tempMash": None,
            "tempMashRaw": -127.0,
            "tempKettle": 66.0,
        }

    def test_cold_but_real_temperature_kept(self):
        """Test that a cold glycol reading is not treated as a fault.

        WHY: Glycol runs below zero; only values under the fault floor are
        disconnected sensors.
        """
        snapshot = normalize([{"name": "Temp Glycol", "value": -4.0}])

        assert snapshot.value("tempGlycol") == -4.0
        assert snapshot.sensor_faults() == []

    def test_floor_only_applies_to_temperatures(self):
        """Test that the fault floor ignores non-temperature readings.

        WHY: A negative flow or pressure is a real measurement.
        """
        snapshot = normalize([{"name": "Flow Rate", "value": -500}])

        assert snapshot.value("flowRate") == -500.0

    def test_custom_fault_floor(self):
        """Test a configured fault floor.

        WHY: Sensor hardware differs in the sentinel it reports.
        """
        snapshot = normalize(
            [{"name": "Temp Mash", "value": -60.0}], fault_floor=-50.0
        )

        assert snapshot["tempMash"].raw_error_value == -60.0


# ================================================================
# MALFORMED INPUT
# ================================================================
class TestMalformedInput:
    """Test tolerance of malformed payloads."""

    def test_malformed_records_counted_not_raised(self):
        """Test that malformed records are dropped and counted.

        WHY: One bad record must not cost the operator the good readings
        in the same payload.
        """
        payload = [
            {"name": "Temp Mash", "value": 65.0},
            {"value": 1},
            {"name": "Fan", "value": "spinning"},
            ["nested"],
            True,
        ]

        snapshot = normalize(payload)

        assert snapshot.value("tempMash") == 65.0
        assert snapshot.malformed_count == 4
        assert [d.index for d in snapshot.dropped] == [1, 2, 3, 4]

    def test_out_of_range_numbers_dropped(self, make_payload):
        """Test that integers too large for a float are dropped, not raised.

        WHY: JSON allows arbitrarily large integers. One such record must
        be counted as malformed while the rest of the payload still lands.
        """
        payload = make_payload(
            fan=40.0, tail=[{"name": "Flow", "value": 10**400}, 10**400]
        )

        snapshot = normalize(payload)

        assert snapshot.value("fanPower") == 40.0
        assert snapshot.malformed_count == 2
        assert {d.reason for d in snapshot.dropped} == {"number out of range"}

    def test_blank_records_not_counted(self):
        """Test that blank placeholders are skipped silently.

        WHY: The controller pads every payload with blanks; counting them
        would make every poll look malformed.
        """
        snapshot = normalize(["", None, "  "])

        assert len(snapshot) == 0
        assert snapshot.malformed_count == 0

    @pytest.mark.parametrize("payload", [{"name": "Fan"}, "Fan", b"x", 42, None])
    def test_non_sequence_payload(self, payload):
        """Test that a non-list payload yields an empty snapshot.

        WHY: One bad response must not crash the polling loop.
        """
        snapshot = normalize(payload)

        assert len(snapshot) == 0
        assert snapshot.malformed_count == 1

    def test_empty_payload(self):
        """Test an empty payload.

        WHY: An idle controller may report nothing at all.
        """
        snapshot = normalize([])

        assert len(snapshot) == 0
        assert snapshot.malformed_count == 0

    def test_dropped_records_logged_at_debug(self, caplog):
        """Test that drops are logged at debug level.

        WHY: Malformed records repeat every poll; logging them louder would
        flood the console.
        """
        with caplog.at_level(logging.DEBUG, logger="brewnode.telemetry.normalizer"):
            normalize([{"value": 1}])

        assert "Dropped telemetry record #0" in caplog.text


# ================================================================
# PURITY
# ================================================================
class TestPurity:
    """Test that normalization is a pure function."""

    def test_idempotent(self, make_payload):
        """Test that the same payload always yields the same snapshot.

        WHY: The polling loop relies on equal payloads producing equal
        snapshots to reason about transitions.
        """
        payload = make_payload(
            fan=40.0,
            named=[
                {"name": "Temp Mash", "value": -127},
                {"name": "Valve Mash-in", "value": "Open"},
                {"name": "mashInValve", "value": "Closed"},
                {"bogus": True},
            ],
        )

        first = normalize(payload)
        second = normalize(payload)

        assert first == second
        assert first is not second

    def test_payload_not_mutated(self):
        """Test that normalize() leaves its input untouched.

        WHY: Transports may reuse the decoded payload.
        """
        payload = [{"name": "Temp Mash", "value": "65"}]

        normalize(payload)

        assert payload == [{"name": "Temp Mash", "value": "65"}]

    def test_snapshot_is_read_only(self):
        """Test that a snapshot cannot be modified.

        WHY: Snapshots are shared between the frame and every subscriber.
        """
        snapshot = normalize([{"name": "Temp Mash", "value": 65}])

        with pytest.raises(TypeError):
            snapshot["tempMash"] = None

    def test_snapshots_not_hashable(self):
        """Test that snapshots are unhashable.

        WHY: Snapshots define value equality; they must not be used as
        dictionary keys.
        """
        with pytest.raises(TypeError):
            hash(TelemetrySnapshot())


# ================================================================
# CONFIGURED NORMALIZER
# ================================================================
class TestTelemetryNormalizer:
    """Test the configured normalizer wrapper."""

    def test_cumulative_diagnostics(self, make_payload):
        """Test the running totals kept by TelemetryNormalizer.

        WHY: The totals feed get_status() and reveal a misbehaving controller
        over time.
        """
        normalizer = TelemetryNormalizer()

        normalizer.normalize(make_payload(named=[{"name": "Fan", "value": 1}]))
        normalizer.normalize([{"value": 1}, {"value": 2}])

        diagnostics = normalizer.get_diagnostics()
        assert diagnostics["total_payloads"] == 2
        assert diagnostics["total_malformed"] == 2
        assert diagnostics["total_aliases_dropped"] == 1

    def test_extended_registry(self):
        """Test that config-supplied units are resolved by name."""
        registry = DEFAULT_REGISTRY.extended(
            [
                EquipmentUnit(
                    "hltPump",
                    SensorCategory.PUMP,
                    aliases=("Pump HLT",),
                    command=CommandRoute("/pump/hlt"),
                )
            ]
        )
        normalizer = TelemetryNormalizer(registry=registry)

        snapshot = normalizer.normalize([{"name": "Pump HLT", "value": "On"}])

        assert snapshot["hltPump"].category == SensorCategory.PUMP
        assert snapshot.value("hltPump") == 1.0
