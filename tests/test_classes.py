import numpy as np
import pytest

from ladderfuels import Profile, Layer, CBHRecord, MalformedProfileError, get_cbh_metrics


class TestProfile:

    def test_step_from_heights(self):
        profile = Profile([1., 1.5, 2., 2.5], [0., 1., 1., 0.])
        assert profile.step == .5
        assert profile.top == 3.

    def test_immutable(self):
        profile = Profile([1., 2.], [1., 1.])
        with pytest.raises(ValueError):
            profile.lad[0] = 5.

    @pytest.mark.parametrize('heights,lad', [
        ([], []),
        ([1., 2.], [1.]),
        ([1., 1., 2.], [1., 1., 1.]),
        ([2., 1.], [1., 1.]),
        ([1., 2.], [1., -.1]),
        ([1., np.nan], [1., 1.]),
    ])
    def test_malformed(self, heights, lad):
        with pytest.raises(MalformedProfileError):
            Profile(heights, lad)

    def test_from_array_requires_two_columns(self):
        with pytest.raises(MalformedProfileError):
            Profile.from_array(np.ones((4, 3)))

    def test_cumulative_lad_excludes_own_bin(self):
        profile = Profile([1., 2., 3.], [1., 2., 3.])
        assert profile.cumulative_lad().tolist() == [0., 1., 3.]

    def test_lad_between_is_half_open(self):
        profile = Profile([1., 2., 3.], [1., 2., 3.])
        assert profile.lad_between(1., 3.) == 3.


class TestLayer:

    def test_derived_properties(self):
        layer = Layer(4., 7., distance_to_next=2., distance_below=1.5)
        assert layer.depth == 3.
        assert layer.gap_base == 2.5
        assert np.isnan(layer.lad_fraction)


class TestCBHRecord:

    def test_to_dict_columns(self, thin_first_layer_profile):
        row = get_cbh_metrics(thin_first_layer_profile).to_dict()
        assert row['treeID'] == 'T1'
        assert row['nlayers'] == 3
        assert row['maxlad_Hcbh'] == 1.5
        assert row['maxlad_Hdptf'] == 2.5
        assert row['maxlad_dptf'] == 1.
        assert row['maxlad1_Hcbh'] == 4.
        assert row['maxlad1_Hdist'] == 2.5
        assert row['maxlad1_effdist'] == 1.5
        assert row['last_Hcbh'] == 12.
        assert row['max_Hcbh'] == 12.
        assert row['max_height'] == 13.5
        assert np.isnan(row['bp_Hcbh'])

    def test_layer_table(self, two_layer_profile):
        table = get_cbh_metrics(two_layer_profile).layer_table()
        assert table['layer'].tolist() == [1, 2]
        assert table['base_height'].tolist() == [2., 8.]
        assert table['distance_to_next'].tolist() == [3., 0.]
        assert (table['treeID'] == 'T1').all()

    def test_empty_record(self):
        record = CBHRecord.empty('none')
        assert record.nlayers == 0
        assert record.layer_table().empty
        row = record.to_dict()
        assert row['nlayers'] == 0
        assert np.isnan(row['last_Hcbh'])
