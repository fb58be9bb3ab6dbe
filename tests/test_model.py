import numpy as np
import pandas as pd
import pytest
from sklearn.model_selection import StratifiedKFold, RepeatedStratifiedKFold
from sklearn.tree import DecisionTreeClassifier

from clinical_ml.model import (
    create_data_partition,
    make_cv_control,
    lasso_lambda_grid,
    train_lasso_model,
    train_tree_model,
    variable_importance,
    save_model,
    load_model,
)


SMALL_LAMBDAS = [0.0005, 0.005, 0.05, 0.5]
SMALL_CP_GRID = [0.0, 0.01, 0.05]


@pytest.fixture
def cv3():
    return make_cv_control('cv', number=3, random_state=0)


def test_partition_covers_all_records_without_overlap(binary_data):
    _, y = binary_data
    train_idx, test_idx = create_data_partition(y, p=0.7, random_state=123)

    assert len(train_idx) + len(test_idx) == len(y)
    assert set(train_idx).isdisjoint(test_idx)
    assert set(train_idx) | set(test_idx) == set(range(len(y)))


def test_partition_is_reproducible_for_a_seed(binary_data):
    _, y = binary_data
    first = create_data_partition(y, random_state=42)
    second = create_data_partition(y, random_state=42)
    other = create_data_partition(y, random_state=7)

    np.testing.assert_array_equal(first[0], second[0])
    np.testing.assert_array_equal(first[1], second[1])
    assert not np.array_equal(first[0], other[0])


def test_partition_is_stratified(binary_data):
    _, y = binary_data
    train_idx, test_idx = create_data_partition(y, p=0.7)
    assert y.iloc[train_idx].mean() == pytest.approx(y.mean(), abs=0.02)
    assert y.iloc[test_idx].mean() == pytest.approx(y.mean(), abs=0.02)


@pytest.mark.parametrize('p', [0, 1, 1.5])
def test_partition_rejects_invalid_proportion(binary_data, p):
    _, y = binary_data
    with pytest.raises(ValueError):
        create_data_partition(y, p=p)


def test_make_cv_control():
    cv = make_cv_control('cv', number=5)
    assert isinstance(cv, StratifiedKFold)
    assert cv.get_n_splits() == 5

    repeated = make_cv_control('repeatedcv', number=5, repeats=3)
    assert isinstance(repeated, RepeatedStratifiedKFold)
    assert repeated.get_n_splits() == 15

    with pytest.raises(ValueError):
        make_cv_control('boot')


def test_lasso_lambda_grid():
    grid = lasso_lambda_grid()
    assert len(grid) == 100
    assert grid[0] == pytest.approx(1e-3)
    assert grid[-1] == pytest.approx(1e3)


def test_train_lasso_model(binary_data, cv3):
    X, y = binary_data
    search, info = train_lasso_model(X, y, lambdas=SMALL_LAMBDAS, cv=cv3)

    assert info['model_type'] == 'lasso'
    assert min(SMALL_LAMBDAS) <= info['best_lambda'] <= max(SMALL_LAMBDAS)
    assert info['best_lambda'] == pytest.approx(
        min(SMALL_LAMBDAS, key=lambda lam: abs(lam - info['best_lambda']))
    )

    tuning = info['tuning_results']
    assert list(tuning.columns) == ['lambda', 'mean_score', 'std_score']
    assert len(tuning) == len(SMALL_LAMBDAS)
    assert tuning['lambda'].is_monotonic_increasing

    importance = info['variable_importance']
    assert importance['feature'].iloc[0] == 'signal'
    assert importance['importance'].max() == pytest.approx(100)
    assert importance['importance'].min() == pytest.approx(0)

    assert info['best_score'] > 0.8
    assert set(search.predict(X)) <= {0, 1}


def test_train_lasso_model_with_down_sampling(binary_data, cv3):
    X, y = binary_data
    search, info = train_lasso_model(
        X, y, lambdas=SMALL_LAMBDAS, cv=cv3, sampling='down', scoring='roc_auc'
    )
    assert 'sampler' in search.best_estimator_.named_steps
    assert info['sampling'] == 'down'


def test_train_lasso_model_rejects_unknown_sampling(binary_data, cv3):
    X, y = binary_data
    with pytest.raises(ValueError, match="sampling"):
        train_lasso_model(X, y, lambdas=SMALL_LAMBDAS, cv=cv3, sampling='smote')


def test_train_tree_model(binary_data, cv3):
    X, y = binary_data
    search, info = train_tree_model(X, y, cp_grid=SMALL_CP_GRID, cv=cv3)

    assert info['model_type'] == 'tree'
    assert info['best_cp'] in SMALL_CP_GRID
    assert info['tree_depth'] >= 1
    assert list(info['tuning_results'].columns) == ['cp', 'mean_score', 'std_score']
    assert info['variable_importance']['feature'].iloc[0] == 'signal'


def test_variable_importance_of_a_stump_is_all_zero(binary_data):
    X, y = binary_data
    stump = DecisionTreeClassifier(ccp_alpha=1.0).fit(X, y)
    importance = variable_importance(stump, X.columns)

    assert not importance['importance'].isna().any()
    assert (importance['importance'] == 0).all()


def test_save_and_load_model(tmp_path, binary_data):
    X, y = binary_data
    model = DecisionTreeClassifier(max_depth=2, random_state=0).fit(X, y)
    path = save_model(model, str(tmp_path / "model" / "tree.joblib"), {'best_cp': 0.01})

    loaded, info = load_model(path)
    np.testing.assert_array_equal(loaded.predict(X), model.predict(X))
    assert info == {'best_cp': 0.01}


def test_load_model_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_model(str(tmp_path / "absent.joblib"))


def test_lasso_strong_penalty_gives_exact_zero_coefficients(binary_data, cv3):
    X, y = binary_data

    _, heavy = train_lasso_model(X, y, lambdas=[10.0], cv=cv3)
    assert (heavy['coefficients']['coefficient'] == 0).all()

    search, light = train_lasso_model(X, y, lambdas=[0.0005], cv=cv3)
    coefs = light['coefficients'].set_index('feature')['coefficient']
    assert coefs['signal'] > 0
    assert search.best_estimator_.named_steps['clf'].l1_ratio == 1.0
