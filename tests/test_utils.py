import numpy as np
import pandas as pd
import pytest

from ladderfuels import summarize_cbh, profiles_from_table, load_settings, DEFAULT_SETTINGS


@pytest.fixture
def profiles_table(two_layer_profile, sandwich_profile):
    tables = []
    for tree_id, profile in [('A', two_layer_profile), ('B', sandwich_profile)]:
        tables.append(pd.DataFrame({'treeID': tree_id, 'height': profile.heights, 'lad': profile.lad}))
    bad = pd.DataFrame({'treeID': 'C', 'height': [2., 3., 4.], 'lad': [1., -1., 1.]})
    return pd.concat(tables + [bad]).reset_index(drop=True)


class TestProfilesFromTable:

    def test_split_and_sort(self):
        table = pd.DataFrame({'id': [1, 1, 2, 2, 1],
                              'z': [3., 1., 1., 2., 2.],
                              'value': [.3, .1, 1., 2., np.nan]})
        profiles = profiles_from_table(table, tree_id_col='id', height_col='z', lad_col='value')
        assert [profile.tree_id for profile in profiles] == [1, 2]
        assert profiles[0].heights.tolist() == [1., 3.]
        assert profiles[0].lad.tolist() == [.1, .3]

    def test_missing_column(self):
        with pytest.raises(KeyError):
            profiles_from_table(pd.DataFrame({'treeID': [1], 'height': [1.]}))


class TestSummarizeCBH:

    def test_one_row_per_tree(self, profiles_table):
        summary, layers = summarize_cbh(profiles_table)
        assert summary['treeID'].tolist() == ['A', 'B', 'C']
        assert summary.loc[0, 'last_Hcbh'] == 8.
        assert summary.loc[1, 'nlayers'] == 2
        assert summary['error'].isna().tolist() == [True, True, False]

    def test_failed_tree_isolated(self, profiles_table):
        summary, layers = summarize_cbh(profiles_table)
        failed = summary[summary['treeID'] == 'C'].iloc[0]
        assert 'MalformedProfileError' in failed['error']
        assert np.isnan(failed['maxlad_Hcbh'])
        assert set(layers['treeID']) == {'A', 'B'}
        assert layers.groupby('treeID')['layer'].max().to_dict() == {'A': 2, 'B': 2}

    def test_settings_passed_through(self, profiles_table):
        summary, _ = summarize_cbh(profiles_table[profiles_table['treeID'] == 'B'], min_fraction=5.)
        assert summary.loc[0, 'nlayers'] == 3

    def test_profile_list(self, two_layer_profile, single_layer_profile):
        summary, layers = summarize_cbh([two_layer_profile, single_layer_profile])
        assert summary['treeID'].tolist() == ['T1', 'single']
        assert summary.loc[1, 'bp_Hcbh'] == pytest.approx(6., abs=.2)
        assert len(layers) == 3


class TestLoadSettings:

    def test_defaults_filled(self, tmp_path):
        path = tmp_path / 'settings.yml'
        path.write_text('min_height: 2.0\nmin_fraction: 5\n')
        settings = load_settings(path)
        assert settings['min_height'] == 2.
        assert settings['min_fraction'] == 5
        assert settings['hdepth1_height'] == DEFAULT_SETTINGS['hdepth1_height']

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'settings.yml'
        path.write_text('')
        assert load_settings(path) == DEFAULT_SETTINGS

    def test_unknown_key(self, tmp_path):
        path = tmp_path / 'settings.yml'
        path.write_text('min_hieght: 2.0\n')
        with pytest.raises(KeyError):
            load_settings(path)

    def test_settings_usable(self, tmp_path, profiles_table):
        path = tmp_path / 'settings.yml'
        path.write_text('min_height: 1.5\n')
        summary, _ = summarize_cbh(profiles_table, **load_settings(path))
        assert summary.loc[0, 'maxlad_Hcbh'] == 8.
