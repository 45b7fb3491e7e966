import logging
import numpy as np
from numba import njit
from typing import List, Sequence, Tuple, Union

from ladderfuels.classes import Profile, Gap, Layer, TOLERANCE
from ladderfuels.errors import NoLayersFoundError, ConvergenceError

log = logging.getLogger(__name__)


@njit
def _find_runs(mask):
    """Return start (inclusive) and end (exclusive) indices of runs of True values in a boolean array"""
    n = mask.shape[0]
    starts = np.empty(n, dtype=np.int64)
    ends = np.empty(n, dtype=np.int64)
    count = 0
    i = 0
    while i < n:
        if mask[i]:
            j = i
            while j < n and mask[j]:
                j += 1
            starts[count] = i
            ends[count] = j
            count += 1
            i = j
        else:
            i += 1
    return starts[:count].copy(), ends[:count].copy()


def last_argmax(values:Sequence[float]) -> int:
    """Index of the last occurrence of the maximum value, ignoring nan"""
    values = np.asarray(values, dtype=np.float64)
    return int(np.flatnonzero(values == np.nanmax(values))[-1])


def prepare_profile(profile:Profile, min_height:float=1.5) -> Tuple[Profile, float]:
    """Apply the min_height == 0 special case

    With min_height == 0 the effective minimum height becomes 0.5 and the profile is shifted so its first sample sits
    at 0.5 instead of at (or below) ground level. Otherwise profile and min_height are returned unchanged.
    """
    if min_height == 0:
        min_height = .5
        profile = profile.shifted(min_height - profile.heights[0])
    return profile, float(min_height)


def detect_gaps(profile:Profile, min_height:float=1.5, gap_threshold:float=.01) -> List[Gap]:
    """Find runs of consecutive bins with LAD below gap_threshold

    Args:
        profile: LAD profile of a single tree
        min_height: samples below this height are ignored as ground noise
        gap_threshold: bins with LAD < gap_threshold are considered empty

    Returns: Gaps ordered bottom-up, including runs at the bottom and top of the profile. A gap ends at the first
        following non-empty bin, or at the top of the profile.
    """
    mask = profile.at_or_above(min_height)
    heights = profile.heights[mask]
    lad = profile.lad[mask]
    if heights.size == 0:
        return []

    starts, ends = _find_runs(lad < gap_threshold)
    gaps = []
    for start, end in zip(starts, ends):
        gap_end = heights[end] if end < heights.size else profile.top
        gaps.append(Gap(float(heights[start]), float(gap_end)))
    return gaps


def link_layers(layers:Sequence[Layer], floor:Union[float,None]=None) -> List[Layer]:
    """Recompute effective distances of an ordered layer list from layer positions

    Args:
        layers: layers ordered by base height
        floor: lowest height of the analysed profile, used for the distance below the first layer. If None, the
            gap base of the first layer is kept.

    Returns: new list of layers
    """
    if len(layers) == 0:
        return []
    if floor is None:
        floor = layers[0].gap_base

    linked = []
    for i, layer in enumerate(layers):
        below = layer.base_height - (floor if i == 0 else layers[i - 1].top_height)
        above = layers[i + 1].base_height - layer.top_height if i < len(layers) - 1 else 0.
        linked.append(layer._replace(distance_below=below, distance_to_next=above))
    return linked


def assemble_layers(profile:Profile, gaps:Sequence[Gap], min_height:float=1.5) -> List[Layer]:
    """Build fuel layers from the complement of gaps above min_height

    Raises: NoLayersFoundError if no bin above min_height has non-negligible LAD
    """
    heights = profile.heights[profile.at_or_above(min_height)]
    if heights.size == 0:
        raise NoLayersFoundError(f'No samples above min_height={min_height} (tree {profile.tree_id})')
    floor = float(heights[0])
    ceiling = profile.top

    layers = []
    cursor = floor
    for gap in gaps:
        if gap.start > cursor:
            # Gaps reaching the top of the profile do not separate two layers
            raw_distance = gap.span if gap.end < ceiling else 0.
            layers.append(Layer(cursor, gap.start, raw_distance=raw_distance))
        cursor = max(cursor, gap.end)
    if cursor < ceiling:
        layers.append(Layer(cursor, ceiling))

    if len(layers) == 0:
        raise NoLayersFoundError(f'No fuel layers above min_height={min_height} (tree {profile.tree_id})')

    return link_layers(layers, floor)


def _is_below_step(value:float, min_step:float) -> bool:
    return value < min_step - TOLERANCE


def _is_within_step(value:float, min_step:float) -> bool:
    return value < min_step + TOLERANCE


def merge_neighbour(layers:Sequence[Layer], index:int) -> Tuple[int, int]:
    """Choose which neighbour a thin layer is merged into

    With a single neighbour that one is used. With two, the layer is merged across the smaller of the two distances
    (the upper neighbour when both are equal).

    Returns: (lower index, upper index) of the pair to merge
    """
    if index == 0:
        return 0, 1
    if index == len(layers) - 1:
        return index - 1, index
    if layers[index].distance_below < layers[index].distance_to_next:
        return index - 1, index
    return index, index + 1


def find_merge(layers:Sequence[Layer], min_step:float) -> Union[Tuple[int, int], None]:
    """Find the lowest pair of layers that must be merged, or None if none is needed

    Layers separated by a distance of at most min_step are merged. A layer thinner than min_step is merged into a
    neighbour.
    """
    for i, layer in enumerate(layers):
        if i < len(layers) - 1 and _is_within_step(layer.distance_to_next, min_step):
            return i, i + 1
        if _is_below_step(layer.depth, min_step):
            return merge_neighbour(layers, i)
    return None


def merge_layers(layers:Sequence[Layer], lower:int, upper:int) -> List[Layer]:
    """Replace layers lower..upper by one layer spanning them. Distances are re-derived."""
    floor = layers[0].gap_base
    merged = Layer(layers[lower].base_height, layers[upper].top_height, raw_distance=layers[upper].raw_distance)
    return link_layers(list(layers[:lower]) + [merged] + list(layers[upper + 1:]), floor)


def correct_layers(layers:Sequence[Layer], min_step:float, max_iterations:Union[int,None]=None) -> List[Layer]:
    """Merge layers until every distance between layers exceeds min_step and no depth is smaller than min_step

    Each pass merges one pair, so the layer count strictly decreases and the loop ends after at most
    len(layers) - 1 merges.

    Args:
        layers: layers ordered by base height
        min_step: minimum distance between layers and minimum layer depth, usually one or more bin widths
        max_iterations: bound on the number of passes. Defaults to len(layers) + 1.

    Returns: new list of layers. Merged layers have lad_fraction reset to nan.

    Raises: ConvergenceError if the loop does not reach a fixed point within max_iterations
    """
    layers = link_layers(layers)
    if max_iterations is None:
        max_iterations = len(layers) + 1

    for _ in range(max_iterations):
        if len(layers) <= 1:
            return layers
        pair = find_merge(layers, min_step)
        if pair is None:
            return layers
        log.debug('Merging layers %s: [%s, %s) and [%s, %s)', pair,
                  layers[pair[0]].base_height, layers[pair[0]].top_height,
                  layers[pair[1]].base_height, layers[pair[1]].top_height)
        layers = merge_layers(layers, *pair)

    raise ConvergenceError(f'Layer correction did not converge after {max_iterations} iterations')


def layer_lad_fractions(layers:Sequence[Layer], profile:Profile, min_height:float=1.5) -> List[Layer]:
    """Assign each layer its percentage of the total LAD above min_height"""
    total = float(profile.lad[profile.at_or_above(min_height)].sum())
    result = []
    for layer in layers:
        if total > 0:
            fraction = 100 * profile.lad_between(layer.base_height, layer.top_height) / total
        else:
            fraction = 0.
        result.append(layer._replace(lad_fraction=fraction))
    return result


def filter_layers(layers:Sequence[Layer],
                  profile:Profile,
                  min_step:float,
                  min_fraction:float=10.,
                  min_height:float=1.5,
                  max_iterations:Union[int,None]=None) -> List[Layer]:
    """Drop layers holding less than min_fraction percent of the total LAD and re-correct the remaining layers

    Dropped layers become part of the gap between their neighbours. Dropping and correction repeat until every
    layer reaches min_fraction or a single layer is left. If every layer is below min_fraction, the layer with the
    largest share (the highest one on ties) is kept.

    Args:
        layers: corrected layers ordered by base height
        profile: profile the layers were built from
        min_step: passed to correct_layers
        min_fraction: minimum percentage of total LAD
        min_height: lower bound of the heights included in the total LAD
        max_iterations: bound on the number of drop passes. Defaults to len(layers) + 1.

    Returns: new list of layers with lad_fraction assigned
    """
    if len(layers) == 0:
        return []
    floor = layers[0].gap_base
    if max_iterations is None:
        max_iterations = len(layers) + 1

    for _ in range(max_iterations):
        layers = layer_lad_fractions(layers, profile, min_height)
        if len(layers) <= 1:
            return layers

        keep = [layer for layer in layers if layer.lad_fraction >= min_fraction]
        if len(keep) == len(layers):
            return layers
        if len(keep) == 0:
            keep = [layers[last_argmax([layer.lad_fraction for layer in layers])]]

        log.debug('Dropping %d of %d layers below %s%% LAD', len(layers) - len(keep), len(layers), min_fraction)
        layers = correct_layers(link_layers(keep, floor), min_step)

    raise ConvergenceError(f'LAD filtering did not converge after {max_iterations} iterations')
