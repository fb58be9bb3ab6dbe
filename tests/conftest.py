import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


HCV_COUNTS = {
    '0=Blood Donor': 150,
    '0s=suspect Blood Donor': 8,
    '1=Hepatitis': 16,
    '2=Fibrosis': 14,
    '3=Cirrhosis': 12,
}


@pytest.fixture
def hcv_frame():
    """Synthetic HCV data: liver disease raises AST/GGT/BIL and lowers CHE."""

    rng = np.random.default_rng(0)
    categories = np.concatenate([[c] * n for c, n in HCV_COUNTS.items()])
    n = len(categories)
    diseased = np.array([not c.startswith('0') for c in categories])

    df = pd.DataFrame({
        'Category': categories,
        'Age': rng.integers(25, 75, n),
        'Sex': rng.choice(['m', 'f'], n),
        'ALB': rng.normal(42, 5, n) - 5 * diseased,
        'ALP': rng.normal(70, 15, n),
        'ALT': rng.normal(25, 8, n) + 20 * diseased,
        'AST': rng.normal(25, 6, n) + 60 * diseased,
        'BIL': rng.normal(8, 3, n) + 20 * diseased,
        'CHE': rng.normal(8, 1.5, n) - 3 * diseased,
        'CHOL': rng.normal(5.3, 1, n),
        'CREA': rng.normal(80, 15, n),
        'GGT': rng.normal(30, 10, n) + 90 * diseased,
        'PROT': rng.normal(72, 4, n),
    })
    df.loc[[3, 40, 170], 'ALP'] = np.nan
    df.loc[95, 'CHOL'] = np.nan
    return df


@pytest.fixture
def nhanes_frame():
    """Synthetic NHANES extract in the R NHANES package vocabulary."""

    rng = np.random.default_rng(1)
    n = 400
    age = rng.integers(20, 80, n)
    weight = rng.normal(80, 15, n)
    height = rng.normal(170, 10, n)
    bmi = weight / (height / 100) ** 2
    logit = 0.08 * (age - 55) + 0.25 * (bmi - 30) - 1.0
    diabetes = np.where(rng.random(n) < 1 / (1 + np.exp(-logit)), 'Yes', 'No')

    df = pd.DataFrame({
        'ID': np.arange(n),
        'Age': age,
        'Race1': rng.choice(['White', 'Black', 'Mexican', 'Other'], n),
        'Education': rng.choice(['High School', 'Some College', 'College Grad'], n),
        'Weight': weight.round(1),
        'Height': height.round(1),
        'Pulse': rng.integers(55, 100, n),
        'Diabetes': diabetes,
        'BMI': bmi.round(2),
        'PhysActive': rng.choice(['Yes', 'No'], n),
        'Smoke100': rng.choice(['Yes', 'No'], n),
    })
    df.loc[[5, 17, 230], 'Pulse'] = np.nan
    df.loc[60, 'Diabetes'] = np.nan

    # Repeated participants
    duplicates = df.drop(columns=['ID']).iloc[[10, 11, 12]]
    df = pd.concat([df.drop(columns=['ID']), duplicates], ignore_index=True)
    return df


@pytest.fixture
def binary_data():
    """Small, well separated two-class problem with one noise feature."""

    rng = np.random.default_rng(2)
    n = 200
    y = pd.Series(np.repeat([0, 1], [120, 80]), name='outcome')
    X = pd.DataFrame({
        'signal': rng.normal(0, 1, n) + 2.5 * y.to_numpy(),
        'weak': rng.normal(0, 1, n) + 0.5 * y.to_numpy(),
        'noise': rng.normal(0, 1, n),
    })
    return X, y
