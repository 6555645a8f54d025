"""Tests for the one-instant cardio and respiration derivation."""

from __future__ import annotations

import pytest

from triagesim.physiology import BodyFactoryParams, Environment, compute, create_body

ENV = Environment(atmospheric_pressure=760, fio2=0.21)


@pytest.fixture(scope="module")
def resting_body():
    return create_body(BodyFactoryParams(), ENV)


@pytest.fixture
def state(resting_body):
    return resting_body.state.copy()


def _share(state, parent: str, child: str) -> float:
    for target, index in state.find_block(parent).connections:
        if target == child:
            return state.connections[index].blood
    raise AssertionError(f"{parent} is not connected to {child}")


# ===== Cardio =====


def test_mean_pressure_is_output_times_resistance(resting_body, state):
    cardio = compute(state, resting_body.meta, ENV, 1 / 6).cardio

    assert cardio.stroke_volume_ml == pytest.approx(
        cardio.end_diastolic_volume_ml - cardio.end_systolic_volume_ml
    )
    assert cardio.cardiac_output == pytest.approx(cardio.stroke_volume_ml * cardio.hr / 1000)
    assert cardio.map == pytest.approx(cardio.cardiac_output * cardio.ra)
    assert cardio.systolic_pressure == pytest.approx(1.5 * cardio.map)


def test_mean_pressure_is_capped_by_the_ventricle(resting_body, state):
    state.vitals.cardio.ra = 100

    cardio = compute(state, resting_body.meta, ENV, 1 / 6).cardio

    uncapped_output = cardio.stroke_volume_ml * cardio.hr / 1000
    assert 0 < cardio.map <= 160
    assert cardio.map < uncapped_output * 100
    assert cardio.cardiac_output == pytest.approx(cardio.map / 100)


def test_hypovolemia_limits_filling(resting_body, state):
    cardio = state.vitals.cardio
    cardio.total_volume_of_plasma_proteins_ml /= 2
    cardio.total_volume_of_water_ml /= 2
    cardio.total_volume_of_white_blood_cells_ml /= 2
    cardio.total_volume_of_erythrocytes_ml /= 2

    compute(state, resting_body.meta, ENV, 1 / 6)

    assert cardio.stroke_volume_ml == pytest.approx(15)
    assert cardio.end_diastolic_volume_ml == pytest.approx(cardio.end_systolic_volume_ml + 15)


def test_tamponade_empties_the_ventricle(resting_body, state):
    state.variables.pericardial_ml = 150

    cardio = compute(state, resting_body.meta, ENV, 1 / 6).cardio

    assert cardio.stroke_volume_ml == pytest.approx(0)
    assert cardio.end_diastolic_volume_ml == pytest.approx(cardio.end_systolic_volume_ml)
    assert cardio.map == pytest.approx(0)


def test_tension_pneumothorax_empties_the_ventricle(resting_body, state):
    state.find_block("THORAX_LEFT").params.internal_pressure = 4
    state.find_block("THORAX_RIGHT").params.internal_pressure = 4

    cardio = compute(state, resting_body.meta, ENV, 1 / 6).cardio

    assert cardio.end_diastolic_volume_ml == pytest.approx(cardio.end_systolic_volume_ml)


def test_drained_thorax_does_not_compress(resting_body, state):
    state.find_block("THORAX_LEFT").params.internal_pressure = "DRAIN"
    state.find_block("THORAX_RIGHT").params.internal_pressure = "DRAIN"

    cardio = compute(state, resting_body.meta, ENV, 1 / 6).cardio

    assert cardio.end_diastolic_volume_ml == pytest.approx(120)


# ===== Lung perfusion =====


def test_vasoconstriction_moves_flow_to_the_ventilated_unit(resting_body, state):
    state.find_block("UNIT_BRONCHUS_1").params.compliance = 0

    compute(state, resting_body.meta, ENV, 1 / 6, lung_vasoconstriction=True)

    assert _share(state, "LUNG", "BRONCHUS_1") == pytest.approx(0)
    assert _share(state, "LUNG", "BRONCHUS_2") == pytest.approx(1)


def test_perfusion_is_fixed_without_vasoconstriction(resting_body, state):
    state.find_block("UNIT_BRONCHUS_1").params.compliance = 0

    compute(state, resting_body.meta, ENV, 1 / 6, lung_vasoconstriction=False)

    assert _share(state, "LUNG", "BRONCHUS_1") == pytest.approx(0.5)
    assert _share(state, "LUNG", "BRONCHUS_2") == pytest.approx(0.5)
