import logging
import numpy as np
from typing import Sequence, Union

from ladderfuels.classes import Profile, Layer, CBHCandidate, CBHRecord
from ladderfuels.changepoint import estimate_breakpoint
from ladderfuels.errors import NoLayersFoundError
from ladderfuels.layers import (prepare_profile, detect_gaps, assemble_layers, correct_layers, filter_layers,
                                last_argmax)

log = logging.getLogger(__name__)


def max_lad_index(layers:Sequence[Layer]) -> int:
    """Layer with the largest LAD percentage. Ties go to the highest layer."""
    return last_argmax([layer.lad_fraction for layer in layers])


def needs_second_layer(layers:Sequence[Layer], index:int, hdepth1_height:float=2.5) -> bool:
    """True if the max LAD layer is a thin first layer and the second layer should also be reported

    A first fuel layer with depth <= hdepth1_height is not accepted as a canopy base on its own, even if it holds
    the largest share of LAD.
    """
    return index == 0 and len(layers) > 1 and layers[0].depth <= hdepth1_height


def max_distance_index(layers:Sequence[Layer]) -> int:
    """Layer directly above the largest effective distance, including the distance from the profile floor to the
    first layer. Ties go to the highest layer."""
    return last_argmax([layer.distance_below for layer in layers])


def last_index(layers:Sequence[Layer]) -> int:
    return len(layers) - 1


def max_profile_height(profile:Profile) -> float:
    """Height of the highest bin with LAD > 0"""
    filled = profile.heights[profile.lad > 0]
    return float(filled.max()) if filled.size > 0 else np.nan


def select_cbh(layers:Sequence[Layer],
               profile:Union[Profile,None]=None,
               min_height:float=1.5,
               hdepth1_height:float=2.5,
               tree_id=None) -> CBHRecord:
    """Select crown base height by maximum LAD percentage, maximum distance and last layer

    Args:
        layers: final layers with lad_fraction assigned, ordered by base height
        profile: profile the layers were built from. Required for the breakpoint estimate of single layer trees.
        min_height: lower bound of heights used in the breakpoint estimate
        hdepth1_height: maximum depth of a first layer that triggers reporting the second layer (maxlad1)
        tree_id: defaults to profile.tree_id

    Returns: CBHRecord

    Raises: ValueError if a layer has no lad_fraction assigned
    """
    if np.isnan([layer.lad_fraction for layer in layers]).any():
        raise ValueError('All layers need a lad_fraction. Assign it with layer_lad_fractions() or filter_layers() '
                         'before selecting the crown base height.')
    if tree_id is None and profile is not None:
        tree_id = profile.tree_id
    max_height = max_profile_height(profile) if profile is not None else np.nan
    if len(layers) == 0:
        return CBHRecord.empty(tree_id, max_height=max_height)

    index = max_lad_index(layers)
    maxlad = CBHCandidate.from_layers(layers, index)
    maxlad1 = None
    if needs_second_layer(layers, index, hdepth1_height):
        maxlad1 = CBHCandidate.from_layers(layers, 1)

    maxdist = CBHCandidate.from_layers(layers, max_distance_index(layers))
    last = CBHCandidate.from_layers(layers, last_index(layers))

    bp = None
    if len(layers) == 1 and profile is not None:
        canopy = profile.above(min_height)
        bp = estimate_breakpoint(canopy.heights,
                                 canopy.cumulative_lad(),
                                 total_lad=float(canopy.lad.sum()),
                                 top_height=layers[0].top_height,
                                 tree_id=tree_id)

    return CBHRecord(tree_id, layers, maxlad=maxlad, maxlad1=maxlad1, maxdist=maxdist, last=last,
                     breakpoint=bp, max_height=max_height)


def get_cbh_metrics(profile:Union[Profile,np.ndarray],
                    min_height:float=1.5,
                    min_step:Union[float,None]=None,
                    number_steps:int=1,
                    min_fraction:float=10.,
                    hdepth1_height:float=2.5,
                    gap_threshold:float=.01,
                    verbose:bool=False,
                    tree_id=None) -> CBHRecord:
    """Segment a tree LAD profile into fuel layers and determine its crown base height

    Args:
        profile: Profile, or array with two columns (height and LAD)
        min_height: samples below this height are ignored. 0 is replaced by 0.5 and the profile shifted to start
            at 0.5.
        min_step: minimum distance between layers and minimum layer depth. Defaults to profile bin width *
            number_steps.
        number_steps: number of bins used for the default min_step
        min_fraction: minimum percentage of total LAD for a layer to be kept
        hdepth1_height: maximum depth of a first layer that triggers reporting the second layer
        gap_threshold: bins with LAD below this value are gaps
        verbose: log progress at INFO level instead of DEBUG
        tree_id: tree identifier used when profile is an array

    Returns: CBHRecord. Empty record (nlayers == 0) if no fuel layer is found.

    Raises:
        MalformedProfileError: invalid profile
        ConvergenceError: layer correction or filtering did not converge
    """
    if not isinstance(profile, Profile):
        profile = Profile.from_array(profile, tree_id=tree_id)
    report = log.info if verbose else log.debug
    report('Processing tree %s', profile.tree_id)

    profile, min_height = prepare_profile(profile, min_height)
    if min_step is None:
        min_step = profile.step * number_steps

    gaps = detect_gaps(profile, min_height, gap_threshold)
    try:
        layers = assemble_layers(profile, gaps, min_height)
    except NoLayersFoundError as error:
        report('Tree %s: %s', profile.tree_id, error)
        return CBHRecord.empty(profile.tree_id, max_height=max_profile_height(profile))

    n_found = len(layers)
    layers = correct_layers(layers, min_step)
    n_corrected = len(layers)
    layers = filter_layers(layers, profile, min_step, min_fraction, min_height)
    report('Tree %s: %d gaps, %d layers found, %d after correction, %d after LAD filter',
           profile.tree_id, len(gaps), n_found, n_corrected, len(layers))

    record = select_cbh(layers, profile, min_height, hdepth1_height)
    report('Tree %s: maxlad_Hcbh=%s max_Hcbh=%s last_Hcbh=%s', profile.tree_id,
           record.maxlad.base_height, record.maxdist.base_height, record.last.base_height)
    return record
