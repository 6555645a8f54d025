"""Tests for the sympathetic level and the vitals it regulates."""

from __future__ import annotations

import pytest

from triagesim.physiology import BodyFactoryParams, CompensationModels, Environment, create_body
from triagesim.physiology.compensation import compute_ortho_level, do_compensate

ENV = Environment(atmospheric_pressure=760, fio2=0.21)

MAP_ONLY = CompensationModels(sympathetic={"vitals.cardio.map": ((0, 30), (60, 0))})


@pytest.fixture(scope="module")
def resting_body():
    return create_body(BodyFactoryParams(), ENV)


@pytest.fixture
def state(resting_body):
    return resting_body.state.copy()


# ===== Sympathetic level =====


def test_collapsed_pressure_saturates_the_level(state):
    state.vitals.cardio.map = 0
    state.variables.para_ortho_level = 0

    assert compute_ortho_level(state) == 100
    assert state.variables.para_ortho_level == 100


def test_stimulus_raises_the_level(state):
    state.vitals.cardio.map = 30
    state.variables.para_ortho_level = 50

    assert compute_ortho_level(state, MAP_ONLY) == pytest.approx(65)


def test_level_is_capped_at_100(state):
    state.vitals.cardio.map = 30
    state.variables.para_ortho_level = 95

    assert compute_ortho_level(state, MAP_ONLY) == 100


def test_level_decays_without_stimulus(state):
    state.vitals.cardio.map = 70
    state.variables.para_ortho_level = 50

    assert compute_ortho_level(state, MAP_ONLY) == pytest.approx(49.5)


def test_arrest_resets_the_level(state):
    state.vitals.cardiac_arrest = 10.0
    state.variables.para_ortho_level = 80

    assert compute_ortho_level(state) == 0
    assert state.variables.para_ortho_level == 0


# ===== Regulated vitals =====


def test_full_level_drives_vitals_to_their_bounds(resting_body, state):
    state.variables.para_ortho_level = 100

    do_compensate(state, resting_body.meta)

    cardio = state.vitals.cardio
    assert cardio.hr == pytest.approx(200)
    assert cardio.ra == pytest.approx(20)
    assert cardio.contractility_boost == pytest.approx(1)


def test_zero_level_rests_at_the_lower_bound(resting_body, state):
    state.variables.para_ortho_level = 0

    do_compensate(state, resting_body.meta)

    assert state.vitals.cardio.hr == pytest.approx(30)


def test_broken_t4_chain_pins_the_sympathetic_response(resting_body, state):
    state.find_block("T1-T4").params.nervous_system_broken = True
    state.variables.para_ortho_level = 100

    do_compensate(state, resting_body.meta)

    assert state.vitals.cardio.hr == pytest.approx(30 + 0.2 * 170)


def test_ventilated_patient_keeps_imposed_breathing(resting_body, state):
    respiration = state.vitals.respiration
    state.vitals.spontaneous_breathing = False
    respiration.rr = 0
    respiration.tidal_volume_l = 0
    state.variables.para_ortho_level = 100

    do_compensate(state, resting_body.meta)

    assert respiration.rr == 0
    assert respiration.tidal_volume_l == 0
    assert state.vitals.cardio.hr == pytest.approx(200)


def test_arrested_body_is_not_compensated(resting_body, state):
    state.vitals.cardiac_arrest = 10.0
    state.variables.para_ortho_level = 100
    hr = state.vitals.cardio.hr

    do_compensate(state, resting_body.meta)

    assert state.vitals.cardio.hr == hr
