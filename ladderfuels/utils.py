import logging
import numpy as np
import pandas as pd
from typing import List, Tuple, Union

from ladderfuels.classes import Profile, CBHRecord
from ladderfuels.cbh import get_cbh_metrics
from ladderfuels.errors import LadderFuelsError

log = logging.getLogger(__name__)

DEFAULT_SETTINGS = {'min_height': 1.5,  # m, samples below are ground noise
                    'min_step': None,  # m, defaults to bin width * number_steps
                    'number_steps': 1,
                    'min_fraction': 10.,  # % of total LAD
                    'hdepth1_height': 2.5,  # m
                    'gap_threshold': .01,
                    'verbose': False}


def load_settings(filepath) -> dict:
    """Read processing settings from a YAML file, filling missing keys with DEFAULT_SETTINGS

    Returns: dict that can be passed as keyword arguments to get_cbh_metrics() or summarize_cbh()
    """
    import yaml
    with open(filepath, 'r', encoding='utf-8') as f:
        settings = yaml.safe_load(f) or {}
    unknown = set(settings) - set(DEFAULT_SETTINGS)
    if len(unknown) > 0:
        raise KeyError('Unknown settings in ' + str(filepath) + ': ' + str(sorted(unknown)))
    return {**DEFAULT_SETTINGS, **settings}


def setup_logging(verbose:bool=False) -> None:
    if verbose:
        logging.basicConfig(format='%(asctime)s - %(name)s - %(message)s', level=logging.INFO)
    else:
        logging.basicConfig(format='%(asctime)s - %(name)s - %(message)s', level=logging.WARNING)


def profiles_from_table(profiles:pd.DataFrame, tree_id_col:str='treeID', height_col:str='height',
                        lad_col:str='lad') -> List[Profile]:
    """Split a long table of LAD profiles into one Profile per tree, sorted by height. Rows with nan LAD are dropped."""
    missing = [col for col in [tree_id_col, height_col, lad_col] if col not in profiles.columns]
    if len(missing) > 0:
        raise KeyError('Columns not found in profiles: ' + str(missing))

    result = []
    for tree_id in profiles[tree_id_col].unique():
        profile = profiles[profiles[tree_id_col] == tree_id]
        profile = profile[profile[lad_col].notna()].sort_values(by=height_col)
        result.append(Profile(profile[height_col].to_numpy(), profile[lad_col].to_numpy(), tree_id=tree_id))
    return result


def summarize_cbh(profiles:Union[pd.DataFrame, List[Profile]],
                  tree_id_col:str='treeID',
                  height_col:str='height',
                  lad_col:str='lad',
                  **kwargs) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Compute crown base height metrics for every tree in a table of LAD profiles

    Errors are isolated to the tree they occur in: the tree gets a row with the error message in the 'error' column
    and nan metrics, and processing continues with the next tree.

    Args:
        profiles: long table with one row per tree and height bin, or list of Profile
        tree_id_col: name of column containing tree IDs
        height_col: name of column containing bin heights in meters
        lad_col: name of column containing LAD
        **kwargs: passed to get_cbh_metrics(), see DEFAULT_SETTINGS

    Returns: (summary table with one row per tree, layer table with one row per tree and fuel layer)
    """
    if isinstance(profiles, pd.DataFrame):
        tree_ids = profiles[tree_id_col].unique()
        profiles_by_tree = [profiles[profiles[tree_id_col] == tree_id] for tree_id in tree_ids]
    else:
        tree_ids = [profile.tree_id for profile in profiles]
        profiles_by_tree = list(profiles)

    rows = []
    layer_tables = []
    for tree_id, profile in zip(tree_ids, profiles_by_tree):
        try:
            if isinstance(profile, pd.DataFrame):
                profile = profiles_from_table(profile, tree_id_col, height_col, lad_col)[0]
            record = get_cbh_metrics(profile, **kwargs)
        except LadderFuelsError as error:
            log.warning('Tree %s failed: %s', tree_id, error)
            row = CBHRecord.empty(tree_id).to_dict()
            row['nlayers'] = np.nan
            row['error'] = f'{type(error).__name__}: {error}'
            rows.append(row)
            continue
        row = record.to_dict()
        row['error'] = None
        rows.append(row)
        if record.nlayers > 0:
            layer_tables.append(record.layer_table())

    summary = pd.DataFrame(rows)
    if len(layer_tables) > 0:
        layers = pd.concat(layer_tables).reset_index(drop=True)
    else:
        layers = CBHRecord.empty(None).layer_table()
    return summary, layers
