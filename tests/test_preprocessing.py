import numpy as np
import pandas as pd
import pytest

from clinical_ml.data_loader import load_hcv_data
from clinical_ml.preprocessing import (
    HCV_CATEGORY_MAP,
    drop_missing_rows,
    collapse_hcv_category,
    encode_binary_target,
    encode_categorical_variables,
    find_correlated_features,
    center_scale,
    prepare_hcv_data,
    prepare_nhanes_data,
)


def test_drop_missing_rows_never_adds_rows(hcv_frame):
    cleaned = drop_missing_rows(hcv_frame)
    assert len(cleaned) <= len(hcv_frame)
    assert len(cleaned) == len(hcv_frame) - 4
    assert not cleaned.isna().any().any()


def test_drop_missing_rows_treats_placeholders_as_missing():
    df = pd.DataFrame({'a': ['1', '?', '3', ''], 'b': [1, 2, 3, 4]})
    cleaned = drop_missing_rows(df)
    assert cleaned['b'].tolist() == [1, 3]


def test_drop_missing_rows_column_subset():
    df = pd.DataFrame({'a': [1, np.nan, 3], 'b': [np.nan, 2, 3]})
    cleaned = drop_missing_rows(df, columns=['a'])
    assert cleaned.index.tolist() == [0, 2]


def test_collapse_maps_every_category_to_one_of_two_labels():
    categories = pd.Series(list(HCV_CATEGORY_MAP))
    collapsed = collapse_hcv_category(categories)
    assert collapsed.notna().all()
    assert set(collapsed) == {'NED', 'LiverDisease'}
    assert collapsed.tolist() == ['NED', 'NED', 'LiverDisease', 'LiverDisease', 'LiverDisease']


def test_collapse_rejects_unmapped_category():
    with pytest.raises(ValueError, match="4=Unknown"):
        collapse_hcv_category(pd.Series(['0=Blood Donor', '4=Unknown']))


def test_collapse_keeps_missing_values_missing():
    collapsed = collapse_hcv_category(pd.Series(['1=Hepatitis', np.nan]))
    assert collapsed.iloc[0] == 'LiverDisease'
    assert pd.isna(collapsed.iloc[1])


def test_encode_binary_target():
    target = encode_binary_target(pd.Series(['Yes', 'No', 'Yes']), positive='Yes')
    assert target.tolist() == [1, 0, 1]


@pytest.mark.parametrize('labels, positive', [
    (['a', 'b', 'c'], 'a'),
    (['a', 'a'], 'a'),
    (['a', 'b'], 'z'),
])
def test_encode_binary_target_rejects_bad_outcomes(labels, positive):
    with pytest.raises(ValueError):
        encode_binary_target(pd.Series(labels), positive=positive)


def test_encode_categorical_variables_drops_reference_level():
    df = pd.DataFrame({'Sex': ['m', 'f', 'm'], 'Age': [30, 40, 50]})
    encoded, info = encode_categorical_variables(df)
    assert list(encoded.columns) == ['Age', 'Sex_m']
    assert info['categorical_columns'] == ['Sex']
    assert encoded['Sex_m'].tolist() == [1, 0, 1]


def test_find_correlated_features_removes_one_of_a_redundant_pair():
    rng = np.random.default_rng(0)
    a = rng.normal(size=300)
    df = pd.DataFrame({
        'a': a,
        'a_copy': a + rng.normal(scale=0.01, size=300),
        'independent': rng.normal(size=300),
        'label': ['x'] * 300,
    })
    removed = find_correlated_features(df, cutoff=0.9)
    assert len(removed) == 1
    assert removed[0] in {'a', 'a_copy'}


def test_find_correlated_features_respects_cutoff():
    rng = np.random.default_rng(1)
    a = rng.normal(size=100)
    df = pd.DataFrame({'a': a, 'b': a + rng.normal(scale=0.5, size=100)})
    assert find_correlated_features(df, cutoff=0.99) == []


def test_center_scale_uses_training_statistics():
    train = pd.DataFrame({'x': [1.0, 2.0, 3.0, 4.0]}, index=[10, 11, 12, 13])
    test = pd.DataFrame({'x': [2.5]}, index=[99])
    train_s, test_s, scaler = center_scale(train, test)

    assert train_s.index.tolist() == [10, 11, 12, 13]
    assert train_s['x'].mean() == pytest.approx(0.0)
    assert train_s['x'].std(ddof=0) == pytest.approx(1.0)
    assert test_s.loc[99, 'x'] == pytest.approx(0.0)
    assert scaler.mean_[0] == pytest.approx(2.5)


def test_prepare_hcv_data(hcv_frame):
    X, y, info = prepare_hcv_data(hcv_frame)

    assert len(X) == len(y) <= len(hcv_frame)
    assert 'Category' not in X.columns
    assert 'Sex_m' in X.columns
    assert set(y.unique()) == {0, 1}
    assert info['class_names'] == ['NED', 'LiverDisease']
    # Suspect donors count as NED
    assert info['outcome_distribution']['NED'] == 158 - 3


def test_prepare_hcv_data_with_correlation_filter(hcv_frame):
    hcv_frame = hcv_frame.assign(AST_copy=hcv_frame['AST'] * 2 + 1)
    X, _, info = prepare_hcv_data(hcv_frame, correlation_cutoff=0.95)
    assert len(info['removed_correlated']) >= 1
    assert not {'AST', 'AST_copy'}.issubset(X.columns)


def test_prepare_nhanes_data(nhanes_frame):
    X, y, info = prepare_nhanes_data(nhanes_frame)

    assert 'Diabetes' not in X.columns
    assert len(X) == len(y)
    # 4 incomplete records and 3 duplicate records removed
    assert info['n_complete'] == len(nhanes_frame) - 4 - 3
    assert not X.assign(Diabetes=y).duplicated().any()
    assert set(y.unique()) == {0, 1}
    assert any(c.startswith('Race1_') for c in X.columns)
    assert info['class_names'] == ['No', 'Yes']


def test_prepare_nhanes_data_requires_outcome(nhanes_frame):
    with pytest.raises(ValueError, match="Diabetes"):
        prepare_nhanes_data(nhanes_frame.drop(columns=['Diabetes']))


def test_drop_missing_rows_restores_numeric_dtype():
    df = pd.DataFrame({'lab': ['1.5', '?', '3.25'], 'sex': ['m', 'f', 'f']})
    cleaned = drop_missing_rows(df)
    assert pd.api.types.is_numeric_dtype(cleaned['lab'])
    assert cleaned['lab'].tolist() == [1.5, 3.25]
    assert cleaned['sex'].tolist() == ['m', 'f']


def test_prepare_hcv_data_with_placeholders_from_csv(tmp_path, hcv_frame):
    _, _, clean_info = prepare_hcv_data(hcv_frame)

    raw = hcv_frame.assign(ALP=hcv_frame['ALP'].astype(object))
    raw.loc[raw['ALP'].isna(), 'ALP'] = '?'
    path = tmp_path / "hcvdat0.csv"
    raw.to_csv(path, index=False)

    X, y, info = prepare_hcv_data(load_hcv_data(str(path), use_ucimlrepo=False))

    assert 'ALP' in X.columns
    assert list(X.columns) == clean_info['final_features']
    assert all(pd.api.types.is_numeric_dtype(X[c]) for c in X.columns)
    assert info['n_complete'] == len(hcv_frame) - 4


def test_prepare_nhanes_data_with_placeholders(nhanes_frame):
    X_clean, _, _ = prepare_nhanes_data(nhanes_frame)

    raw = nhanes_frame.astype({'Pulse': object, 'Weight': object})
    raw.loc[raw['Pulse'].isna(), 'Pulse'] = '?'
    raw.loc[100, 'Weight'] = ''

    X, y, info = prepare_nhanes_data(raw)

    assert list(X.columns) == list(X_clean.columns)
    assert not any(c.startswith(('Pulse_', 'Weight_')) for c in X.columns)
    assert pd.api.types.is_numeric_dtype(X['Pulse'])
    assert info['n_complete'] == len(nhanes_frame) - 5 - 3
