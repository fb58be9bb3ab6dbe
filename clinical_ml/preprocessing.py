"""
Data Preprocessing Module
=========================

Clinical Context:
-----------------
Both case studies go through the same cleaning steps before any model sees
the data:

1. Remove incomplete records ('?' and blank cells count as missing)
2. Recode the diagnostic outcome into a two-class target
3. One-hot encode categorical variables (sex, race, education...)
4. Filter redundant, highly correlated laboratory values
5. Center and scale predictors (fit on training data only)
"""

import pandas as pd
import numpy as np
from typing import Tuple, List, Dict, Optional
from sklearn.preprocessing import StandardScaler


# =============================================================================
# Outcome Definitions
# =============================================================================

HCV_POSITIVE = 'LiverDisease'
HCV_NEGATIVE = 'NED'   # No evidence of disease

# Two-way collapse of the HCV diagnostic categories
HCV_CATEGORY_MAP: Dict[str, str] = {
    '0=Blood Donor': HCV_NEGATIVE,
    '0s=suspect Blood Donor': HCV_NEGATIVE,
    '1=Hepatitis': HCV_POSITIVE,
    '2=Fibrosis': HCV_POSITIVE,
    '3=Cirrhosis': HCV_POSITIVE,
}

NHANES_POSITIVE = 'Yes'
NHANES_NEGATIVE = 'No'

# Variables kept from NHANES for diabetes prediction
NHANES_COLUMNS: List[str] = [
    'Age', 'Race1', 'Education', 'HHIncome', 'Weight', 'Height', 'Pulse',
    'Diabetes', 'BMI', 'PhysActive', 'Smoke100',
    # Present only in the UCI 2013-2014 subset
    'Gender', 'Insulin',
]

MISSING_PLACEHOLDERS = ['?', '']


def drop_missing_rows(
    df: pd.DataFrame,
    columns: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Remove records with any missing value.

    Parameters
    ----------
    df : pd.DataFrame
        Input data.
    columns : list, optional
        Only consider these columns. Defaults to all columns.

    Returns
    -------
    pd.DataFrame
        Complete cases only (never more rows than the input).
    """

    df = df.replace(MISSING_PLACEHOLDERS, np.nan)
    subset = [c for c in columns if c in df.columns] if columns else None

    n_before = len(df)
    df = df.dropna(subset=subset).copy()
    n_removed = n_before - len(df)

    # Placeholders force numeric columns to object dtype
    for col in df.columns:
        values = df[col]
        if values.dtype.kind != 'O' or isinstance(values.dtype, pd.CategoricalDtype):
            continue
        converted = pd.to_numeric(values, errors='coerce')
        if converted.notna().sum() == values.notna().sum():
            df[col] = converted

    print(f"Removed {n_removed:,} incomplete records ({n_before:,} -> {len(df):,})")

    return df


def collapse_hcv_category(category: pd.Series) -> pd.Series:
    """
    Collapse the five HCV diagnostic categories into a binary outcome.

    Parameters
    ----------
    category : pd.Series
        Original 'Category' column, e.g. '0=Blood Donor', '3=Cirrhosis'.

    Returns
    -------
    pd.Series
        'NED' for (suspect) blood donors, 'LiverDisease' for hepatitis,
        fibrosis and cirrhosis. Missing values stay missing.

    Raises
    ------
    ValueError
        If a category is not part of the mapping.

    Clinical Context:
    -----------------
    Suspect blood donors are grouped with donors: their laboratory values
    were flagged but no liver disease was confirmed.
    """

    observed = set(category.dropna().astype(str).str.strip().unique())
    unmapped = sorted(observed - set(HCV_CATEGORY_MAP))
    if unmapped:
        raise ValueError(f"Unmapped HCV categories: {unmapped}")

    stripped = category.where(category.isna(), category.astype(str).str.strip())
    return stripped.map(HCV_CATEGORY_MAP).rename('outcome')


def encode_binary_target(labels: pd.Series, positive: str) -> pd.Series:
    """
    Encode a two-level outcome as 0/1 integers (1 = positive class).

    Raises
    ------
    ValueError
        If the outcome does not have exactly two levels or lacks `positive`.
    """

    levels = sorted(labels.dropna().unique().tolist())
    if len(levels) != 2:
        raise ValueError(f"Expected a two-level outcome, found {levels}")
    if positive not in levels:
        raise ValueError(f"Positive class {positive!r} not among {levels}")

    target = (labels == positive).astype(int)

    positive_rate = target.mean() * 100
    print(f"Positive class ({positive}): {positive_rate:.2f}%")

    return target


def encode_categorical_variables(
    df: pd.DataFrame,
    drop_first: bool = True
) -> Tuple[pd.DataFrame, Dict]:
    """
    One-hot encode categorical variables.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame with categorical columns.
    drop_first : bool, default=True
        Drop the reference level of each factor (treatment coding, as R's
        model.matrix does).

    Returns
    -------
    df_encoded : pd.DataFrame
        DataFrame with categorical variables one-hot encoded.
    encoding_info : dict
        Information about encoding for reproducibility.
    """

    categorical_cols = df.select_dtypes(
        include=['object', 'category', 'string']
    ).columns.tolist()
    encoding_info = {'categorical_columns': categorical_cols}

    if not categorical_cols:
        encoding_info['new_columns'] = []
        return df, encoding_info

    df_encoded = pd.get_dummies(
        df,
        columns=categorical_cols,
        drop_first=drop_first,
        dtype=int
    )

    # Spaces and brackets in factor levels ("13-17yr", "College Grad")
    df_encoded.columns = [
        str(col).replace(' ', '_').replace('[', '').replace(']', '')
        for col in df_encoded.columns
    ]

    encoding_info['new_columns'] = [
        c for c in df_encoded.columns if c not in df.columns
    ]

    print(f"Created {len(encoding_info['new_columns'])} indicator columns "
          f"from {len(categorical_cols)} categorical columns")

    return df_encoded, encoding_info


def find_correlated_features(
    df: pd.DataFrame,
    cutoff: float = 0.9
) -> List[str]:
    """
    Identify features to remove so that no pairwise |r| exceeds `cutoff`.

    Repeatedly takes the most correlated remaining pair and flags the member
    with the larger mean absolute correlation to the other remaining
    features. Similar to caret's findCorrelation, which instead scans pairs
    in order of mean |r|, so removal sets can differ on ties or chains.

    Parameters
    ----------
    df : pd.DataFrame
        Feature matrix. Non-numeric columns are ignored.
    cutoff : float, default=0.9
        Absolute correlation threshold.

    Returns
    -------
    list
        Column names to remove, in removal order.
    """

    numeric = df.select_dtypes(include=[np.number])
    corr = numeric.corr().abs()
    # Constant columns have undefined correlation
    corr = corr.fillna(0.0)

    remaining = corr.columns.tolist()
    to_remove: List[str] = []

    while len(remaining) > 1:
        sub = corr.loc[remaining, remaining].to_numpy(copy=True)
        np.fill_diagonal(sub, 0.0)

        i, j = np.unravel_index(np.argmax(sub), sub.shape)
        if sub[i, j] <= cutoff:
            break

        mean_i = sub[i].sum() / (len(remaining) - 1)
        mean_j = sub[j].sum() / (len(remaining) - 1)
        drop = remaining[i] if mean_i > mean_j else remaining[j]

        to_remove.append(drop)
        remaining.remove(drop)

    if to_remove:
        print(f"Correlated features (|r| > {cutoff}): {to_remove}")

    return to_remove


def center_scale(
    X_train: pd.DataFrame,
    X_test: Optional[pd.DataFrame] = None
) -> Tuple[pd.DataFrame, Optional[pd.DataFrame], StandardScaler]:
    """
    Center and scale predictors using training-set means and SDs.

    The same transformation is applied to the test set, so no information
    from held-out data leaks into preprocessing.
    """

    scaler = StandardScaler()
    X_train_scaled = pd.DataFrame(
        scaler.fit_transform(X_train),
        columns=X_train.columns,
        index=X_train.index
    )

    X_test_scaled = None
    if X_test is not None:
        X_test_scaled = pd.DataFrame(
            scaler.transform(X_test),
            columns=X_test.columns,
            index=X_test.index
        )

    return X_train_scaled, X_test_scaled, scaler


def prepare_hcv_data(
    df: pd.DataFrame,
    correlation_cutoff: Optional[float] = None
) -> Tuple[pd.DataFrame, pd.Series, Dict]:
    """
    Clean the HCV dataset for liver disease classification.

    Parameters
    ----------
    df : pd.DataFrame
        Raw HCV data with a 'Category' column.
    correlation_cutoff : float, optional
        If given, remove features flagged by find_correlated_features.

    Returns
    -------
    X : pd.DataFrame
        Numeric feature matrix (Sex encoded as Sex_m).
    y : pd.Series
        Binary target (1 = LiverDisease, 0 = NED).
    preprocessing_info : dict
        Information about preprocessing steps for reproducibility.
    """

    preprocessing_info = {'n_raw': len(df)}

    print("Step 1: Removing incomplete records...")
    df = drop_missing_rows(df)
    preprocessing_info['n_complete'] = len(df)

    print("Step 2: Collapsing diagnostic categories...")
    outcome = collapse_hcv_category(df['Category'])
    preprocessing_info['outcome_distribution'] = outcome.value_counts().to_dict()

    X = df.drop(columns=['Category'])

    print("Step 3: Encoding categorical variables...")
    X, encoding_info = encode_categorical_variables(X)
    preprocessing_info['encoding_info'] = encoding_info

    X = X.apply(pd.to_numeric)

    preprocessing_info['removed_correlated'] = []
    if correlation_cutoff is not None:
        print("Step 4: Filtering correlated features...")
        to_remove = find_correlated_features(X, cutoff=correlation_cutoff)
        X = X.drop(columns=to_remove)
        preprocessing_info['removed_correlated'] = to_remove

    print("Step 5: Encoding target...")
    y = encode_binary_target(outcome, positive=HCV_POSITIVE).rename('outcome')

    preprocessing_info['final_features'] = X.columns.tolist()
    preprocessing_info['class_names'] = [HCV_NEGATIVE, HCV_POSITIVE]

    print(f"\nPreprocessing complete!")
    print(f"Final dataset shape: {X.shape}")

    return X, y, preprocessing_info


def prepare_nhanes_data(
    df: pd.DataFrame,
    keep_columns: Optional[List[str]] = None
) -> Tuple[pd.DataFrame, pd.Series, Dict]:
    """
    Clean NHANES data for diabetes prediction.

    Parameters
    ----------
    df : pd.DataFrame
        NHANES data in the R NHANES package vocabulary.
    keep_columns : list, optional
        Variables to retain. Defaults to NHANES_COLUMNS; names absent from
        the data are skipped.

    Returns
    -------
    X : pd.DataFrame
        Feature matrix with categorical variables one-hot encoded.
    y : pd.Series
        Binary target (1 = Diabetes "Yes").
    preprocessing_info : dict

    Clinical Note:
    --------------
    NHANES contains repeated participants across survey cycles; exact
    duplicate rows are removed after subsetting so that the same person
    cannot land in both the training and the test set.
    """

    keep_columns = keep_columns or NHANES_COLUMNS
    if 'Diabetes' not in df.columns:
        raise ValueError("NHANES data has no 'Diabetes' column")

    preprocessing_info = {'n_raw': len(df)}

    print("Step 1: Selecting variables...")
    selected = [c for c in keep_columns if c in df.columns]
    df = df[selected]
    preprocessing_info['selected_columns'] = selected
    print(f"   Kept {len(selected)} variables: {selected}")

    print("Step 2: Removing incomplete records...")
    df = drop_missing_rows(df)

    print("Step 3: Removing duplicate records...")
    n_before = len(df)
    df = df.drop_duplicates()
    print(f"Removed {n_before - len(df):,} duplicate records")
    preprocessing_info['n_complete'] = len(df)

    outcome = df['Diabetes'].astype(str)
    preprocessing_info['outcome_distribution'] = outcome.value_counts().to_dict()

    print("Step 4: Encoding categorical variables...")
    X, encoding_info = encode_categorical_variables(df.drop(columns=['Diabetes']))
    preprocessing_info['encoding_info'] = encoding_info

    print("Step 5: Encoding target...")
    y = encode_binary_target(outcome, positive=NHANES_POSITIVE).rename('Diabetes')

    preprocessing_info['final_features'] = X.columns.tolist()
    preprocessing_info['class_names'] = [NHANES_NEGATIVE, NHANES_POSITIVE]

    print(f"\nPreprocessing complete!")
    print(f"Final dataset shape: {X.shape}")

    return X, y, preprocessing_info
