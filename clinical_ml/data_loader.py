"""
Data Loading Module for the HCV and NHANES Case Studies
=======================================================

Clinical Context:
-----------------
Two public health datasets are used throughout the tutorial:

1. HCV data (hcvdat0.csv): laboratory values of blood donors and of
   Hepatitis-C patients at different disease stages (hepatitis, fibrosis,
   cirrhosis). Each row is one subject with 10 blood markers plus age and sex.
2. NHANES: the US National Health and Nutrition Examination Survey. Each row
   is one survey participant with demographic, anthropometric and lifestyle
   variables, and a self-reported diabetes diagnosis.

Sources: UCI Machine Learning Repository
https://archive.ics.uci.edu/dataset/571/hcv+data
https://archive.ics.uci.edu/dataset/887
"""

import pandas as pd
from pathlib import Path
from typing import Optional


HCV_UCI_ID = 571
NHANES_UCI_ID = 887

# Leading row-number column written by R's write.csv / pandas to_csv
INDEX_COLUMNS = ['Unnamed: 0', '', 'X']

# UCI NHANES 2013-2014 subset -> R NHANES package vocabulary
NHANES_UCI_RENAME = {
    'RIDAGEYR': 'Age',
    'RIAGENDR': 'Gender',
    'PAQ605': 'PhysActive',
    'BMXBMI': 'BMI',
    'LBXIN': 'Insulin',
    'DIQ010': 'Diabetes',
}

NHANES_UCI_RECODE = {
    'Gender': {1: 'male', 2: 'female'},
    'PhysActive': {1: 'Yes', 2: 'No'},
    'Diabetes': {1: 'Yes', 2: 'No'},
}


def load_hcv_data(
    data_path: Optional[str] = None,
    use_ucimlrepo: bool = True
) -> pd.DataFrame:
    """
    Load the Hepatitis-C blood donor dataset.

    Parameters
    ----------
    data_path : str, optional
        Path to a local copy of hcvdat0.csv. If None (or the file does not
        exist) and use_ucimlrepo=True, downloads from UCI ML Repository.
    use_ucimlrepo : bool, default=True
        Whether to use the ucimlrepo package to fetch data directly.

    Returns
    -------
    pd.DataFrame
        Raw HCV dataset with 'Category' as the diagnostic column.
    """

    if data_path and Path(data_path).exists():
        print(f"Loading data from local file: {data_path}")
        df = pd.read_csv(data_path)
    elif use_ucimlrepo:
        df = _fetch_from_uci(HCV_UCI_ID, "HCV data")
    else:
        raise ValueError(
            "Either provide an existing data_path or set use_ucimlrepo=True"
        )

    df = _drop_index_column(df)

    _print_data_summary(df, outcome_column='Category', title="HCV DATASET SUMMARY")

    return df


def load_nhanes_data(
    data_path: Optional[str] = None,
    use_ucimlrepo: bool = True
) -> pd.DataFrame:
    """
    Load NHANES survey data for diabetes prediction.

    Parameters
    ----------
    data_path : str, optional
        Path to a CSV export of the R NHANES package data. Column names are
        expected in that package's vocabulary (Age, Race1, BMI, Diabetes...).
    use_ucimlrepo : bool, default=True
        Fall back to the UCI NHANES 2013-2014 subset, renamed into the same
        vocabulary.

    Returns
    -------
    pd.DataFrame
        NHANES data with 'Diabetes' coded as "Yes"/"No".

    Clinical Note:
    --------------
    The UCI subset codes diabetes as 1=Yes, 2=No, 3=Borderline. Borderline
    and refused/unknown answers become missing and are removed later with
    the other incomplete records.
    """

    if data_path and Path(data_path).exists():
        print(f"Loading data from local file: {data_path}")
        df = pd.read_csv(data_path)
    elif use_ucimlrepo:
        df = _fetch_from_uci(NHANES_UCI_ID, "NHANES 2013-2014 subset")
        df = harmonize_nhanes_columns(df)
    else:
        raise ValueError(
            "Either provide an existing data_path or set use_ucimlrepo=True"
        )

    df = _drop_index_column(df)

    _print_data_summary(df, outcome_column='Diabetes', title="NHANES DATASET SUMMARY")

    return df


def harmonize_nhanes_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename and recode the UCI NHANES subset to the R NHANES vocabulary."""

    df = df.rename(columns=NHANES_UCI_RENAME)
    keep = [c for c in NHANES_UCI_RENAME.values() if c in df.columns]
    df = df[keep].copy()

    for col, mapping in NHANES_UCI_RECODE.items():
        if col in df.columns:
            # Codes outside the mapping (borderline, refused, don't know) -> NaN
            df[col] = df[col].map(mapping)

    return df


def _fetch_from_uci(dataset_id: int, name: str) -> pd.DataFrame:
    """Fetch a dataset from the UCI ML Repository as one DataFrame."""

    print(f"Fetching {name} from UCI ML Repository (id={dataset_id})...")
    try:
        from ucimlrepo import fetch_ucirepo

        dataset = fetch_ucirepo(id=dataset_id)

        # Combine features and targets into single DataFrame
        frames = [dataset.data.features]
        if dataset.data.targets is not None:
            frames.append(dataset.data.targets)
        df = pd.concat(frames, axis=1)

        print(f"Successfully loaded {len(df):,} records")

    except ImportError:
        raise ImportError(
            "ucimlrepo package not installed. "
            "Run: pip install ucimlrepo"
        )
    except Exception as e:
        raise RuntimeError(f"Failed to fetch data from UCI: {str(e)}")

    return df


def _drop_index_column(df: pd.DataFrame) -> pd.DataFrame:
    """Drop a leading row-number column if the CSV carries one."""

    first = df.columns[0] if len(df.columns) else None
    if first in INDEX_COLUMNS:
        values = pd.to_numeric(df[first], errors='coerce')
        if values.notna().all() and values.is_monotonic_increasing:
            df = df.drop(columns=[first])
    return df


def _print_data_summary(
    df: pd.DataFrame,
    outcome_column: Optional[str] = None,
    title: str = "DATASET SUMMARY"
) -> None:
    """Print a summary of the loaded dataset."""

    print("\n" + "="*60)
    print(title)
    print("="*60)
    print(f"Total records: {len(df):,}")
    print(f"Total columns: {df.shape[1]}")
    print(f"Memory usage: {df.memory_usage(deep=True).sum() / 1e6:.2f} MB")

    n_incomplete = int(df.isna().any(axis=1).sum())
    print(f"Records with missing values: {n_incomplete:,}")

    if outcome_column and outcome_column in df.columns:
        print(f"\n{outcome_column} Distribution:")
        print(df[outcome_column].value_counts(dropna=False))

    print("="*60 + "\n")


def save_processed_data(
    df: pd.DataFrame,
    output_path: str,
    description: str = "processed_data"
) -> None:
    """
    Save processed DataFrame to CSV.

    Parameters
    ----------
    df : pd.DataFrame
        Processed data to save.
    output_path : str
        Path to save the CSV file.
    description : str
        Description for logging purposes.
    """

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    df.to_csv(output_path, index=False)
    print(f"Saved {description}: {output_path}")
    print(f"Shape: {df.shape}")
