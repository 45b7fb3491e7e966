import numpy as np
import pandas as pd
from typing import NamedTuple, Union, Sequence

from ladderfuels.errors import MalformedProfileError

# Tolerance for comparing heights and distances that carry floating point noise (e.g. 1.4999999999999998 vs 1.5)
TOLERANCE = 1e-9


class Profile:
    """Vertical LAD profile of a single tree

    Heights and LAD values are stored as read-only float64 arrays. Each sample represents the height bin
    [height, height + step).
    """
    def __init__(self, heights:Sequence[float], lad:Sequence[float], tree_id=None, step:Union[float,None]=None):
        """Initialize and validate Profile

        Args:
            heights (Sequence[float]): bin heights in meters, strictly increasing
            lad (Sequence[float]): leaf area density of each bin, non-negative
            tree_id: tree identifier carried through to results
            step (float): bin width. If None, uses the median difference between consecutive heights.
        """
        heights = np.array(heights, dtype=np.float64).flatten()
        lad = np.array(lad, dtype=np.float64).flatten()

        if heights.size == 0:
            raise MalformedProfileError(f'Profile for tree {tree_id} is empty')
        if heights.size != lad.size:
            raise MalformedProfileError(f'Profile for tree {tree_id} has {heights.size} heights but {lad.size} LAD values')
        if not (np.isfinite(heights).all() and np.isfinite(lad).all()):
            raise MalformedProfileError(f'Profile for tree {tree_id} contains nan or inf values')
        if (np.diff(heights) <= 0).any():
            raise MalformedProfileError(f'Heights must be strictly increasing (tree {tree_id})')
        if (lad < 0).any():
            raise MalformedProfileError(f'LAD must be non-negative (tree {tree_id})')

        if step is None:
            step = float(np.median(np.diff(heights))) if heights.size > 1 else 1.
        if step <= 0:
            raise MalformedProfileError(f'Bin step must be positive, got {step}')

        heights.setflags(write=False)
        lad.setflags(write=False)
        self.heights = heights
        self.lad = lad
        self.tree_id = tree_id
        self.step = float(step)

    @classmethod
    def from_array(cls, profile:np.ndarray, tree_id=None) -> 'Profile':
        """Initialize from array with two columns. First column must contain height, second column LAD."""
        profile = np.asarray(profile, dtype=np.float64)
        if profile.ndim != 2 or profile.shape[1] != 2:
            raise MalformedProfileError('profile must be array with 2 columns (height and LAD).')
        return cls(profile[:, 0], profile[:, 1], tree_id=tree_id)

    def __len__(self):
        return self.heights.size

    def __repr__(self):
        return f'Profile(tree_id={self.tree_id!r}, n={len(self)}, step={self.step})'

    @property
    def top(self) -> float:
        """Upper bound of the highest bin"""
        return float(self.heights[-1] + self.step)

    def shifted(self, offset:float) -> 'Profile':
        """Return a new Profile with all heights moved by offset"""
        return Profile(self.heights + offset, self.lad, tree_id=self.tree_id, step=self.step)

    def above(self, min_height:float) -> 'Profile':
        """Return a new Profile restricted to heights >= min_height"""
        mask = self.at_or_above(min_height)
        return Profile(self.heights[mask], self.lad[mask], tree_id=self.tree_id, step=self.step)

    def at_or_above(self, min_height:float) -> np.ndarray:
        """Boolean mask of samples with height >= min_height, within TOLERANCE"""
        return self.heights >= min_height - TOLERANCE

    def lad_between(self, lower:float, upper:float) -> float:
        """Sum LAD of samples with height in [lower, upper)"""
        mask = (self.heights >= lower) & (self.heights < upper)
        return float(self.lad[mask].sum())

    def cumulative_lad(self) -> np.ndarray:
        """LAD accumulated below each sample height (exclusive cumulative sum)"""
        return np.cumsum(self.lad) - self.lad


class Gap(NamedTuple):
    """Interval [start, end) of consecutive bins with negligible LAD"""
    start: float
    end: float

    @property
    def span(self) -> float:
        return self.end - self.start


class Layer(NamedTuple):
    """Fuel layer: contiguous interval [base_height, top_height) of non-negligible LAD

    distance_to_next and distance_below are effective distances, derived from the positions of neighbouring layers
    by ladderfuels.layers.link_layers. raw_distance is the span of the detected gap directly above the layer and is
    kept for diagnostics only.
    """
    base_height: float
    top_height: float
    distance_to_next: float = 0.
    distance_below: float = 0.
    raw_distance: float = 0.
    lad_fraction: float = np.nan

    @property
    def depth(self) -> float:
        return self.top_height - self.base_height

    @property
    def gap_base(self) -> float:
        """Height where the gap below this layer begins"""
        return self.base_height - self.distance_below


class CBHCandidate(NamedTuple):
    """Layer selected by one of the CBH criteria. layer is the 1-based layer index."""
    layer: int
    base_height: float
    top_height: float
    gap_base: float
    depth: float
    distance: float
    lad_fraction: float

    @classmethod
    def from_layers(cls, layers:Sequence[Layer], index:int) -> 'CBHCandidate':
        selected = layers[index]
        return cls(layer=index + 1,
                   base_height=selected.base_height,
                   top_height=selected.top_height,
                   gap_base=selected.gap_base,
                   depth=selected.depth,
                   distance=selected.distance_below,
                   lad_fraction=selected.lad_fraction)


class Breakpoint(NamedTuple):
    """Result of segmented regression on the cumulative LAD curve"""
    height: float
    below_pct: float
    above_pct: float
    top_height: float
    rss: float


# Column suffixes used in flat CBH tables, mapped to CBHCandidate fields
CANDIDATE_COLUMNS = {'Hcbh': 'base_height',
                     'Hdptf': 'top_height',
                     'Hdist': 'gap_base',
                     'dptf': 'depth',
                     'effdist': 'distance',
                     'lad': 'lad_fraction'}

LAYER_COLUMNS = ['layer', 'base_height', 'top_height', 'depth', 'gap_base', 'distance_below', 'distance_to_next',
                 'raw_distance', 'lad_fraction']


class CBHRecord:
    """Crown base height metrics of one tree. Created once by ladderfuels.cbh.select_cbh and not modified."""
    def __init__(self,
                 tree_id,
                 layers:Sequence[Layer],
                 maxlad:Union[CBHCandidate,None]=None,
                 maxlad1:Union[CBHCandidate,None]=None,
                 maxdist:Union[CBHCandidate,None]=None,
                 last:Union[CBHCandidate,None]=None,
                 breakpoint:Union[Breakpoint,None]=None,
                 max_height:float=np.nan):
        self.tree_id = tree_id
        self.layers = tuple(layers)
        self.maxlad = maxlad
        self.maxlad1 = maxlad1
        self.maxdist = maxdist
        self.last = last
        self.breakpoint = breakpoint
        self.max_height = max_height

    @classmethod
    def empty(cls, tree_id, max_height:float=np.nan) -> 'CBHRecord':
        """Record for a tree without fuel layers"""
        return cls(tree_id, layers=[], max_height=max_height)

    @property
    def nlayers(self) -> int:
        return len(self.layers)

    def __repr__(self):
        return (f'CBHRecord(tree_id={self.tree_id!r}, nlayers={self.nlayers}, '
                f'maxlad_Hcbh={self.to_dict()["maxlad_Hcbh"]}, last_Hcbh={self.to_dict()["last_Hcbh"]})')

    def to_dict(self) -> dict:
        """Flatten record to a dict using the column names of the CBH metrics table. Missing values are nan."""
        result = {'treeID': self.tree_id}
        for prefix, candidate in [('maxlad', self.maxlad), ('maxlad1', self.maxlad1),
                                  ('max', self.maxdist), ('last', self.last)]:
            for suffix, field in CANDIDATE_COLUMNS.items():
                result[f'{prefix}_{suffix}'] = np.nan if candidate is None else getattr(candidate, field)

        bp = self.breakpoint
        result['bp_Hcbh'] = np.nan if bp is None else bp.height
        result['bp_Hdptf'] = np.nan if bp is None else bp.top_height
        result['below_hcbhbp'] = np.nan if bp is None else bp.below_pct
        result['above_hcbhbp'] = np.nan if bp is None else bp.above_pct
        result['nlayers'] = self.nlayers
        result['max_height'] = self.max_height
        return result

    def layer_table(self) -> pd.DataFrame:
        """Final layers as a table with one row per layer and 1-based layer index"""
        rows = []
        for i, layer in enumerate(self.layers):
            rows.append([i + 1, layer.base_height, layer.top_height, layer.depth, layer.gap_base,
                         layer.distance_below, layer.distance_to_next, layer.raw_distance, layer.lad_fraction])
        table = pd.DataFrame(rows, columns=LAYER_COLUMNS)
        table.insert(0, 'treeID', self.tree_id)
        return table
