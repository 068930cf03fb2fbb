import numpy as np
import pytest

from resad import (
    AssemblyOptions,
    Config,
    Constants,
    c,
    get_constant,
    get_dtype,
    get_switching_epsilon,
    resolve_options,
    with_precision,
)
from resad.errors import UnknownOptionError


def test_defaults():
    config = Config()
    assert config.dp_max_rel == np.inf
    assert config.ds_max_abs == 0.2
    assert config.max_iterations == 25
    assert config.linear_solver == "direct"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"ds_max_abs": 0.0},
        {"ds_max_abs": 1.5},
        {"dp_max_rel": -1.0},
        {"rs_adjust": 0.0},
        {"max_iterations": 0},
        {"linear_solver": "foo"},
        {"preconditioner": "foo"},
        {"linear_tolerance": 0.1},
        {"max_linear_iterations": 0},
    ],
)
def test_invalid_settings(kwargs):
    with pytest.raises(ValueError):
        Config(**kwargs)


def test_options_from_keywords():
    options = AssemblyOptions.from_kwargs(res_only=True, iteration=2)
    assert options.res_only
    assert options.iteration == 2

    with pytest.raises(UnknownOptionError):
        AssemblyOptions.from_kwargs(resonly=True)


def test_keywords_override_given_options():
    options = resolve_options(AssemblyOptions(iteration=4, reverse_mode=True), {"iteration": 5})
    assert options.iteration == 5
    assert options.reverse_mode
    assert resolve_options(None, {}) == AssemblyOptions()


def test_constants_can_be_overridden_for_a_block():
    assert c.STANDARD_GRAVITY == pytest.approx(9.80665)
    with Constants(STANDARD_GRAVITY=10.0)():
        assert c.STANDARD_GRAVITY == 10.0
        assert get_constant("BAR").unit == "Pa"
    assert c.STANDARD_GRAVITY == pytest.approx(9.80665)
    assert get_constant("NOT_A_CONSTANT") is None


def test_saturation_sum_tolerance_defaults_to_the_current_constant():
    assert Config().saturation_sum_tolerance == 1e-8
    with Constants(SATURATION_SUM_TOLERANCE=1e-6)():
        assert Config().saturation_sum_tolerance == 1e-6
    assert Config(saturation_sum_tolerance=1e-4).saturation_sum_tolerance == 1e-4


def test_constants_are_read_only():
    with pytest.raises(AttributeError):
        Constants().DAY = 1.0
    with pytest.raises(AttributeError):
        Constants().NOT_A_CONSTANT


def test_switching_epsilon_follows_the_working_precision():
    assert get_switching_epsilon() == pytest.approx(np.sqrt(np.finfo(np.float64).eps))
    with with_precision(np.float32):
        assert get_switching_epsilon() == pytest.approx(np.sqrt(np.finfo(np.float32).eps))
    assert get_dtype() is np.float64
