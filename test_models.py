import warnings

import numpy as np
import pandas as pd
import pytest

from conftest import RANKS
from workflow_otu.amplicon_data.features import build_feature_matrix
from workflow_otu.amplicon_data.predicates import exclude_values
from workflow_otu.amplicon_data.top_features import rank_importances, save_top_features
from workflow_otu.models.random_forest import (
    TrainedModel, save_feature_importances, train_random_forest
)
from workflow_otu.utils.data import filter_samples, scale_to_depth


@pytest.fixture
def features(station_data):
    data = filter_samples(station_data, exclude_values('sample_type', ['control']))
    return build_feature_matrix(scale_to_depth(data, 1000, 'round'), 'station')


def _fixed_model(importances):
    importances = pd.Series(importances, name='importance')
    return TrainedModel(
        model=None,
        importances=importances,
        oob_error=0.0,
        oob_confusion=pd.DataFrame(),
        classes=['north', 'south'],
        n_trees=1,
        max_features='sqrt',
        random_state=0,
    )


def _taxonomy(taxa):
    return pd.DataFrame(
        [['Bacteria', 'Firmicutes', 'Bacilli', 'Lactobacillales',
          'Streptococcaceae', f'Genus{i}'] for i in range(len(taxa))],
        index=taxa, columns=RANKS
    )

# ================================== RANDOM FOREST =================================== #

def test_train_random_forest(features):
    trained = train_random_forest(features, n_trees=200, max_features='sqrt', random_state=7)
    assert 0.0 <= trained.oob_error <= 1.0
    assert list(trained.importances.index) == list(features.X.columns)
    assert (trained.importances >= 0).all()
    assert trained.classes == ['north', 'south']
    assert trained.oob_confusion.shape == (2, 2)
    assert list(trained.oob_confusion.index) == ['north', 'south']
    assert trained.oob_confusion.values.sum() <= features.X.shape[0]


def test_discriminating_otus_rank_highest(features):
    trained = train_random_forest(features, n_trees=300, max_features='sqrt', random_state=3)
    top_two = trained.importances.sort_values(ascending=False).index[:2]
    assert set(top_two) == {'otu1', 'otu2'}
    assert trained.oob_error < 0.5


def test_training_is_reproducible_with_seed(features):
    first = train_random_forest(features, n_trees=50, max_features=2, random_state=11)
    second = train_random_forest(features, n_trees=50, max_features=2, random_state=11)
    pd.testing.assert_series_equal(first.importances, second.importances)
    assert first.oob_error == second.oob_error


def test_importances_are_mean_decrease_in_gini(features):
    trained = train_random_forest(features, n_trees=50, max_features='sqrt', random_state=7)
    per_tree = [
        tree.tree_.compute_feature_importances(normalize=False)
        for tree in trained.model.estimators_
    ]
    np.testing.assert_allclose(trained.importances.values, np.mean(per_tree, axis=0))


def test_results_do_not_depend_on_n_jobs(features):
    serial = train_random_forest(
        features, n_trees=40, max_features='sqrt', random_state=5, n_jobs=1
    )
    parallel = train_random_forest(
        features, n_trees=40, max_features='sqrt', random_state=5, n_jobs=2
    )
    pd.testing.assert_series_equal(serial.importances, parallel.importances)
    assert serial.oob_error == parallel.oob_error


def test_few_trees_train_without_runtime_warnings(features):
    with warnings.catch_warnings():
        warnings.simplefilter('error', RuntimeWarning)
        trained = train_random_forest(features, n_trees=3, max_features='sqrt', random_state=1)
    # Samples that were never out-of-bag carry no vote
    assert trained.oob_confusion.values.sum() <= features.X.shape[0]


@pytest.mark.parametrize('max_features', [0, 100, 1.5, 'half', True])
def test_invalid_max_features(features, max_features):
    with pytest.raises(ValueError):
        train_random_forest(features, n_trees=10, max_features=max_features, random_state=0)


def test_non_positive_tree_count(features):
    with pytest.raises(ValueError):
        train_random_forest(features, n_trees=0, max_features='sqrt', random_state=0)


def test_save_feature_importances(tmp_path):
    model = _fixed_model({'a': 0.1, 'b': 0.6, 'c': 0.3})
    path = save_feature_importances(model, tmp_path)
    saved = pd.read_csv(path, index_col=0)
    assert list(saved.index) == ['b', 'c', 'a']

# ==================================== RANKING ======================================= #

def test_rank_importances_top_k():
    taxa = ['t1', 't2', 't3', 't4']
    model = _fixed_model(dict(zip(taxa, [0.1, 0.4, 0.2, 0.3])))
    table = rank_importances(model, _taxonomy(taxa), top_k=2)
    assert table['taxon'].tolist() == ['t2', 't4']
    assert table['rank'].tolist() == [1, 2]
    assert table.loc[0, 'Genus'] == 'Genus1'
    assert table.loc[0, 'taxonomy'].startswith('Bacteria;Firmicutes')


def test_rank_importances_ties_keep_feature_order():
    taxa = ['t1', 't2', 't3', 't4']
    model = _fixed_model(dict(zip(taxa, [0.25, 0.25, 0.25, 0.25])))
    table = rank_importances(model, _taxonomy(taxa), top_k=4)
    assert table['taxon'].tolist() == taxa

    again = rank_importances(model, _taxonomy(taxa), top_k=4)
    pd.testing.assert_frame_equal(table, again)


def test_rank_importances_k_larger_than_features():
    taxa = ['t1', 't2']
    model = _fixed_model(dict(zip(taxa, [0.7, 0.3])))
    table = rank_importances(model, _taxonomy(taxa), top_k=10)
    assert len(table) == 2


def test_rank_importances_rejects_bad_input():
    taxa = ['t1', 't2']
    model = _fixed_model(dict(zip(taxa, [0.7, 0.3])))
    with pytest.raises(ValueError):
        rank_importances(model, _taxonomy(taxa), top_k=0)
    with pytest.raises(KeyError):
        rank_importances(model, _taxonomy(['t2']), top_k=2)


def test_save_top_features(tmp_path):
    taxa = ['t1', 't2']
    model = _fixed_model(dict(zip(taxa, [0.3, 0.7])))
    path = save_top_features(rank_importances(model, _taxonomy(taxa), top_k=2), tmp_path)
    saved = pd.read_csv(path, sep='\t')
    assert saved['taxon'].tolist() == ['t2', 't1']
    np.testing.assert_allclose(saved['importance'], [0.7, 0.3])
