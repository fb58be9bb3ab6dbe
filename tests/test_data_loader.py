import pandas as pd
import pytest

from clinical_ml.data_loader import (
    load_hcv_data,
    load_nhanes_data,
    harmonize_nhanes_columns,
    save_processed_data,
)


def test_load_hcv_data_drops_row_number_column(tmp_path, hcv_frame):
    path = tmp_path / "hcvdat0.csv"
    hcv_frame.index = hcv_frame.index + 1
    hcv_frame.to_csv(path, index=True)

    df = load_hcv_data(str(path), use_ucimlrepo=False)

    assert list(df.columns) == list(hcv_frame.columns)
    assert len(df) == len(hcv_frame)
    assert df['ALP'].isna().sum() == 3


def test_load_hcv_data_without_source_raises(tmp_path):
    with pytest.raises(ValueError):
        load_hcv_data(str(tmp_path / "missing.csv"), use_ucimlrepo=False)


def test_load_nhanes_data_from_csv(tmp_path, nhanes_frame):
    path = tmp_path / "nhanes.csv"
    nhanes_frame.to_csv(path, index=False)

    df = load_nhanes_data(str(path), use_ucimlrepo=False)

    assert len(df) == len(nhanes_frame)
    assert 'Diabetes' in df.columns


def test_harmonize_nhanes_columns_recodes_uci_subset():
    raw = pd.DataFrame({
        'SEQN': [1, 2, 3, 4],
        'age_group': ['Adult', 'Adult', 'Senior', 'Adult'],
        'RIDAGEYR': [30, 45, 70, 50],
        'RIAGENDR': [1, 2, 2, 1],
        'PAQ605': [1, 2, 2, 7],
        'BMXBMI': [22.5, 31.0, 27.4, 29.9],
        'LBXIN': [5.1, 12.0, 8.3, 9.9],
        'DIQ010': [2, 1, 3, 2],
    })
    df = harmonize_nhanes_columns(raw)

    assert list(df.columns) == ['Age', 'Gender', 'PhysActive', 'BMI', 'Insulin', 'Diabetes']
    assert df['Gender'].tolist() == ['male', 'female', 'female', 'male']
    assert df['Diabetes'].iloc[:2].tolist() == ['No', 'Yes']
    # Borderline diabetes and unknown activity become missing
    assert pd.isna(df['Diabetes'].iloc[2])
    assert pd.isna(df['PhysActive'].iloc[3])


def test_save_processed_data_creates_directories(tmp_path):
    df = pd.DataFrame({'a': [1, 2], 'outcome': [0, 1]})
    path = tmp_path / "nested" / "dir" / "processed.csv"
    save_processed_data(df, str(path))

    assert path.exists()
    pd.testing.assert_frame_equal(pd.read_csv(path), df)
