import numpy as np
import pytest

from ladderfuels import Profile


def build_profile(segments, start, stop, step=1., tree_id='T1'):
    """Profile with LAD 0 everywhere except in segments, a list of (lower, upper, total LAD of the segment)"""
    heights = np.arange(start, stop, step)
    lad = np.zeros_like(heights)
    for lower, upper, total in segments:
        mask = (heights >= lower - 1e-9) & (heights < upper - 1e-9)
        lad[mask] = total / mask.sum()
    return Profile(heights, lad, tree_id=tree_id)


@pytest.fixture
def profile_factory():
    return build_profile


@pytest.fixture
def two_layer_profile():
    """Layers [2, 5) and [8, 12) holding 30% and 70% of the LAD, gap [5, 8)"""
    return build_profile([(2, 5, 30.), (8, 12, 70.)], start=0., stop=14.)


@pytest.fixture
def single_layer_profile():
    """One layer from 1.5 to 20 m, LAD ten times denser above 6 m"""
    heights = np.arange(1.5, 20., .5)
    lad = np.where(heights < 6, .05, .5)
    return Profile(heights, lad, tree_id='single')


@pytest.fixture
def thin_first_layer_profile():
    """Layers [1.5, 2.5) 40%, [4, 10) 35% and [12, 14) 25%"""
    return build_profile([(1.5, 2.5, 40.), (4., 10., 35.), (12., 14., 25.)], start=1.5, stop=14., step=.5)


@pytest.fixture
def sandwich_profile():
    """Layer [7, 8) with 8% of the LAD between layers [2, 5) and [10, 14) holding 45% and 47%"""
    return build_profile([(2, 5, 45.), (7, 8, 8.), (10, 14, 47.)], start=2., stop=14.)
