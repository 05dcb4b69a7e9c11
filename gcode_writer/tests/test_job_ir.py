"""Tests for Job IR operations module.

Validates dataclass creation, immutability, validation, and parsing of
job documents.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from gcode_writer.gcode.formatter import GCodeError
from gcode_writer.job_ir.operations import (
    OPERATIONS_BY_NAME,
    Comment,
    ExtrudeArc,
    ExtrudeTo,
    JobFile,
    Lift,
    Operation,
    Retract,
    SelectFilament,
    SetFan,
    SetFirstLayerTravelAccelerations,
    SetTemperature,
    SetTravelAccelerations,
    TravelTo,
    TravelToZ,
    UpdateProgress,
    job_from_dict,
    load_job,
    operation_from_dict,
    operations_from_dicts,
)


# ---------------------------------------------------------------------------
# Dataclass creation and immutability
# ---------------------------------------------------------------------------


class TestOperationDataclasses:
    def test_travel_defaults(self) -> None:
        op = TravelTo(x=10.5, y=20.3)
        assert isinstance(op, Operation)
        assert op.z is None
        assert op.comment == ""

    def test_extrude_to(self) -> None:
        op = ExtrudeTo(x=1.0, y=2.0, e=0.05)
        assert op.e == 0.05
        assert not op.no_extrusion

    def test_arc_defaults_ccw(self) -> None:
        assert ExtrudeArc(x=1.0, y=0.0, i=0.5, j=0.0, e=0.1).ccw

    def test_frozen(self) -> None:
        op = TravelToZ(z=0.2)
        with pytest.raises(dataclasses.FrozenInstanceError):
            op.z = 0.4

    def test_slots(self) -> None:
        assert not hasattr(Retract(), "__dict__")

    def test_select_filament_negative(self) -> None:
        with pytest.raises(ValueError, match="filament_id"):
            SelectFilament(filament_id=-1)

    @pytest.mark.parametrize("speed", [-1, 101])
    def test_fan_range(self, speed: int) -> None:
        with pytest.raises(ValueError, match="SetFan speed"):
            SetFan(speed=speed)

    def test_temperature_negative(self) -> None:
        with pytest.raises(ValueError, match="temperature"):
            SetTemperature(temperature=-5)

    def test_lift_kind(self) -> None:
        assert Lift(kind="spiral").kind == "spiral"
        with pytest.raises(ValueError, match="Lift kind"):
            Lift(kind="helix")

    def test_travel_accelerations_frozen_tuple(self) -> None:
        op = SetTravelAccelerations(accelerations=[3000, 2000])
        assert op.accelerations == (3000, 2000)
        assert SetFirstLayerTravelAccelerations().accelerations == ()

    def test_travel_accelerations_negative(self) -> None:
        with pytest.raises(ValueError, match="accelerations"):
            SetFirstLayerTravelAccelerations(accelerations=[500, -1])

    def test_progress_total(self) -> None:
        with pytest.raises(ValueError, match="tot"):
            UpdateProgress(num=1, tot=0)


# ---------------------------------------------------------------------------
# Plain-data construction
# ---------------------------------------------------------------------------


class TestOperationFromDict:
    def test_names_are_snake_case(self) -> None:
        assert OPERATIONS_BY_NAME["travel_to_z"] is TravelToZ
        assert OPERATIONS_BY_NAME["set_fan"] is SetFan
        assert OPERATIONS_BY_NAME["extrude_arc"] is ExtrudeArc

    def test_build(self) -> None:
        op = operation_from_dict({"op": "travel_to", "x": 1, "y": 2, "z": 0.2})
        assert op == TravelTo(x=1, y=2, z=0.2)

    def test_input_not_mutated(self) -> None:
        data = {"op": "comment", "text": "hello"}
        assert operation_from_dict(data) == Comment(text="hello")
        assert data == {"op": "comment", "text": "hello"}

    def test_missing_op(self) -> None:
        with pytest.raises(GCodeError, match="no 'op'"):
            operation_from_dict({"x": 1})

    def test_unknown_op(self) -> None:
        with pytest.raises(GCodeError, match="Unknown operation"):
            operation_from_dict({"op": "home_xy"})

    def test_unknown_field(self) -> None:
        with pytest.raises(GCodeError, match="Unknown field"):
            operation_from_dict({"op": "retract", "length": 2.0})

    def test_missing_field(self) -> None:
        with pytest.raises(GCodeError, match="Invalid operation 'travel_to'"):
            operation_from_dict({"op": "travel_to", "x": 1})

    def test_validation_error_wrapped(self) -> None:
        with pytest.raises(GCodeError, match="SetFan speed") as info:
            operation_from_dict({"op": "set_fan", "speed": 150})
        assert isinstance(info.value.__cause__, ValueError)

    def test_not_a_mapping(self) -> None:
        with pytest.raises(GCodeError, match="mapping"):
            operation_from_dict(["travel_to", 1, 2])

    def test_index_in_list_error(self) -> None:
        items = [{"op": "unretract"}, {"op": "set_fan", "speed": -1}]
        with pytest.raises(GCodeError, match="Operation #1"):
            operations_from_dicts(items)


# ---------------------------------------------------------------------------
# Job documents
# ---------------------------------------------------------------------------


class TestJobFile:
    def test_single_plate(self) -> None:
        job = job_from_dict({
            "filaments": [0, 1],
            "operations": [
                {"op": "select_filament", "filament_id": 1},
                {"op": "travel_to", "x": 0, "y": 0},
            ],
        })
        assert isinstance(job, JobFile)
        assert job.filaments == (0, 1)
        assert len(job.plates) == 1
        assert job.operations[0] == SelectFilament(filament_id=1)

    def test_plates(self) -> None:
        job = job_from_dict({
            "plates": [
                [{"op": "travel_to", "x": 0, "y": 0}],
                [{"op": "unretract"}, {"op": "unlift"}],
            ]
        })
        assert [len(p) for p in job.plates] == [1, 2]
        assert len(job.operations) == 3
        assert job.filaments == ()

    def test_both_keys(self) -> None:
        with pytest.raises(GCodeError, match="exactly one"):
            job_from_dict({"operations": [], "plates": [[]]})

    def test_neither_key(self) -> None:
        with pytest.raises(GCodeError, match="exactly one"):
            job_from_dict({"filaments": [0]})

    @pytest.mark.parametrize(
        "data",
        [
            {"filaments": 3, "operations": []},
            {"operations": {"op": "retract"}},
            {"plates": 2},
            {"plates": [{"op": "retract"}]},
        ],
    )
    def test_wrong_shape(self, data: dict) -> None:
        with pytest.raises(GCodeError, match="must be"):
            job_from_dict(data)

    def test_acceleration_tables_by_name(self) -> None:
        job = job_from_dict({
            "operations": [
                {"op": "set_travel_accelerations", "accelerations": [3000]},
                {"op": "set_first_layer_travel_accelerations", "accelerations": [1000]},
            ]
        })
        assert job.operations == [
            SetTravelAccelerations(accelerations=(3000,)),
            SetFirstLayerTravelAccelerations(accelerations=(1000,)),
        ]

    def test_empty_plates(self) -> None:
        with pytest.raises(GCodeError, match="empty"):
            job_from_dict({"plates": []})

    def test_bad_filaments(self) -> None:
        with pytest.raises(GCodeError, match="filaments"):
            job_from_dict({"filaments": [0, -2], "operations": []})

    def test_load_job(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text(
            "operations:\n"
            "  - {op: travel_to, x: 10, y: 10, z: 0.2}\n"
            "  - {op: extrude_to, x: 20, y: 10, e: 0.33}\n",
            encoding="utf-8",
        )
        job = load_job(path)
        assert job.operations == [
            TravelTo(x=10, y=10, z=0.2),
            ExtrudeTo(x=20, y=10, e=0.33),
        ]

    def test_load_empty_job(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(GCodeError, match="Empty job"):
            load_job(path)

    def test_load_missing_job(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_job(tmp_path / "missing.yaml")

    def test_load_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text("operations: [{op: travel_to\n", encoding="utf-8")
        with pytest.raises(GCodeError, match="Invalid YAML"):
            load_job(path)
