"""
Modeling Module
===============

Clinical Context:
-----------------
Two interpretable model families are fit to the case studies:

1. LASSO-regularized logistic regression (HCV liver disease)
   - The L1 penalty shrinks uninformative lab values to exactly zero,
     leaving a short list of markers a clinician can check.
   - The penalty strength (lambda) is chosen by cross-validation.

2. Classification tree (NHANES diabetes)
   - A tree is a set of if/then rules that reads like a triage protocol.
   - Cost-complexity pruning (cp) trades tree size against fit and is
     chosen by cross-validation.

Key Consideration: Resampling
-----------------------------
Scaling and (optional) class rebalancing live inside the model pipeline, so
they are refit on every training fold and never see the held-out fold.
"""

import numpy as np
import pandas as pd
from typing import Tuple, Dict, Optional, List, Sequence, Union
from sklearn.model_selection import (
    train_test_split,
    GridSearchCV,
    StratifiedKFold,
    RepeatedStratifiedKFold
)
from sklearn.linear_model import LogisticRegression
from sklearn.tree import DecisionTreeClassifier
from sklearn.preprocessing import StandardScaler
from imblearn.pipeline import Pipeline
from imblearn.under_sampling import RandomUnderSampler
from imblearn.over_sampling import RandomOverSampler
import joblib
from pathlib import Path


DEFAULT_SEED = 123

# caret-style cp grid: seq(0.001, 0.1, by = 0.001)
DEFAULT_CP_GRID = np.round(np.arange(0.001, 0.1001, 0.001), 3)

SAMPLING_METHODS = (None, 'down', 'up')


def create_data_partition(
    y: pd.Series,
    p: float = 0.7,
    random_state: int = DEFAULT_SEED
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split records into training and test sets, stratified on the outcome.

    Parameters
    ----------
    y : pd.Series
        Outcome used for stratification.
    p : float, default=0.7
        Proportion of records assigned to training.
    random_state : int
        Seed; the same seed always yields the same partition.

    Returns
    -------
    train_idx, test_idx : np.ndarray
        Sorted, disjoint positional indices covering every record once.
    """

    if not 0 < p < 1:
        raise ValueError(f"p must be between 0 and 1, got {p}")

    positions = np.arange(len(y))
    train_idx, test_idx = train_test_split(
        positions,
        train_size=p,
        random_state=random_state,
        stratify=np.asarray(y)  # Maintain class proportions
    )

    train_idx = np.sort(train_idx)
    test_idx = np.sort(test_idx)

    print(f"   Training set: {len(train_idx):,} records")
    print(f"   Test set: {len(test_idx):,} records")

    return train_idx, test_idx


def make_cv_control(
    method: str = 'cv',
    number: int = 10,
    repeats: int = 1,
    random_state: int = DEFAULT_SEED
) -> Union[StratifiedKFold, RepeatedStratifiedKFold]:
    """
    Build the resampling scheme used during tuning.

    Parameters
    ----------
    method : {'cv', 'repeatedcv'}
        Plain or repeated stratified k-fold cross-validation.
    number : int, default=10
        Number of folds.
    repeats : int, default=1
        Number of repetitions (method='repeatedcv' only).
    """

    if method == 'cv':
        return StratifiedKFold(n_splits=number, shuffle=True, random_state=random_state)
    if method == 'repeatedcv':
        return RepeatedStratifiedKFold(
            n_splits=number,
            n_repeats=repeats,
            random_state=random_state
        )
    raise ValueError(f"Unknown resampling method {method!r}; use 'cv' or 'repeatedcv'")


def lasso_lambda_grid(start: float = -3, stop: float = 3, num: int = 100) -> np.ndarray:
    """Penalty grid 10^seq(start, stop, length = num)."""
    return 10 ** np.linspace(start, stop, num)


def _make_sampler(sampling: Optional[str], random_state: int):
    if sampling not in SAMPLING_METHODS:
        raise ValueError(f"sampling must be one of {SAMPLING_METHODS}, got {sampling!r}")
    if sampling == 'down':
        return RandomUnderSampler(random_state=random_state)
    if sampling == 'up':
        return RandomOverSampler(random_state=random_state)
    return None


def _build_pipeline(steps: List, sampler, classifier) -> Pipeline:
    steps = list(steps)
    if sampler is not None:
        steps.append(('sampler', sampler))
    steps.append(('clf', classifier))
    return Pipeline(steps=steps)


def train_lasso_model(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    lambdas: Optional[Sequence[float]] = None,
    cv=None,
    scoring: str = 'accuracy',
    sampling: Optional[str] = None,
    random_state: int = DEFAULT_SEED
) -> Tuple[GridSearchCV, Dict]:
    """
    Tune and fit a LASSO logistic regression.

    Parameters
    ----------
    X_train : pd.DataFrame
        Training features (unscaled; centering/scaling is part of the model).
    y_train : pd.Series
        Binary training target.
    lambdas : sequence of float, optional
        Penalty strengths to try. Defaults to lasso_lambda_grid().
    cv : cross-validation splitter, optional
        Defaults to make_cv_control().
    scoring : str, default='accuracy'
        Metric used to pick the best lambda ('accuracy', 'roc_auc', ...).
    sampling : {None, 'down', 'up'}
        Rebalance classes within each training fold.

    Returns
    -------
    search : GridSearchCV
        Fitted search; search.best_estimator_ is refit on all training data.
    training_info : dict
        Best lambda, tuning table and variable importance.

    Note:
    -----
    glmnet minimizes  -loglik/n + lambda * |beta|_1  while scikit-learn
    minimizes  C * (-loglik) + |beta|_1, so lambda maps to C = 1 / (n * lambda).
    n is the full training size, while each CV fold fits on about (k-1)/k of
    it (far fewer rows with sampling='down'), so the tuned lambda is only
    approximately glmnet's.
    """

    print("="*60)
    print("MODEL TRAINING: LASSO Logistic Regression")
    print("="*60)

    lambdas = np.asarray(lasso_lambda_grid() if lambdas is None else lambdas, dtype=float)
    cv = cv if cv is not None else make_cv_control(random_state=random_state)
    n_train = len(X_train)

    pipeline = _build_pipeline(
        [('scaler', StandardScaler())],
        _make_sampler(sampling, random_state),
        LogisticRegression(
            l1_ratio=1.0,
            solver='saga',
            max_iter=5000,
            random_state=random_state
        )
    )

    param_grid = {'clf__C': list(1.0 / (n_train * lambdas))}

    print(f"\n1. Tuning lambda over {len(lambdas)} values "
          f"({lambdas.min():.4g} .. {lambdas.max():.4g})")
    print(f"   Scoring: {scoring}, sampling: {sampling or 'none'}")

    search = GridSearchCV(
        pipeline,
        param_grid,
        scoring=scoring,
        cv=cv,
        n_jobs=-1,
        refit=True
    )
    search.fit(X_train, y_train)

    tuning = _tuning_table(search, 'clf__C')
    tuning.insert(0, 'lambda', 1.0 / (n_train * tuning['clf__C']))
    tuning = tuning.drop(columns=['clf__C']).sort_values('lambda').reset_index(drop=True)

    best_lambda = 1.0 / (n_train * search.best_params_['clf__C'])

    print(f"\n2. Best lambda: {best_lambda:.4g} (CV {scoring}: {search.best_score_:.3f})")

    importance = variable_importance(search, X_train.columns)
    coefficients = lasso_coefficients(search, X_train.columns)
    n_selected = int((coefficients['coefficient'] != 0).sum())
    print(f"   Non-zero coefficients: {n_selected} of {len(coefficients)}")

    _print_importance(importance)

    training_info = {
        'model_type': 'lasso',
        'train_size': n_train,
        'scoring': scoring,
        'sampling': sampling,
        'best_lambda': best_lambda,
        'best_params': search.best_params_,
        'best_score': search.best_score_,
        'tuning_param': 'lambda',
        'tuning_results': tuning,
        'coefficients': coefficients,
        'variable_importance': importance,
    }

    return search, training_info


def train_tree_model(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    cp_grid: Optional[Sequence[float]] = None,
    cv=None,
    scoring: str = 'accuracy',
    sampling: Optional[str] = None,
    random_state: int = DEFAULT_SEED
) -> Tuple[GridSearchCV, Dict]:
    """
    Tune and fit a classification tree over the pruning parameter.

    Parameters
    ----------
    X_train : pd.DataFrame
        Training features.
    y_train : pd.Series
        Binary training target.
    cp_grid : sequence of float, optional
        Cost-complexity pruning values (ccp_alpha). Defaults to
        0.001..0.1 by 0.001.
    cv : cross-validation splitter, optional
        Defaults to make_cv_control().
    scoring : str, default='accuracy'
        Metric used to pick the best cp.
    sampling : {None, 'down', 'up'}
        Rebalance classes within each training fold.

    Returns
    -------
    search : GridSearchCV
    training_info : dict

    Clinical Note:
    --------------
    Larger cp values prune harder. A slightly less accurate but much smaller
    tree is often preferable at the bedside.
    """

    print("="*60)
    print("MODEL TRAINING: Classification Tree")
    print("="*60)

    cp_grid = np.asarray(DEFAULT_CP_GRID if cp_grid is None else cp_grid, dtype=float)
    cv = cv if cv is not None else make_cv_control(random_state=random_state)

    pipeline = _build_pipeline(
        [],
        _make_sampler(sampling, random_state),
        DecisionTreeClassifier(random_state=random_state)
    )

    print(f"\n1. Tuning cp over {len(cp_grid)} values "
          f"({cp_grid.min():.4g} .. {cp_grid.max():.4g})")
    print(f"   Scoring: {scoring}, sampling: {sampling or 'none'}")

    search = GridSearchCV(
        pipeline,
        {'clf__ccp_alpha': list(cp_grid)},
        scoring=scoring,
        cv=cv,
        n_jobs=-1,
        refit=True
    )
    search.fit(X_train, y_train)

    tuning = _tuning_table(search, 'clf__ccp_alpha').rename(columns={'clf__ccp_alpha': 'cp'})
    tuning = tuning.sort_values('cp').reset_index(drop=True)

    best_cp = search.best_params_['clf__ccp_alpha']
    tree = search.best_estimator_.named_steps['clf']

    print(f"\n2. Best cp: {best_cp:.4g} (CV {scoring}: {search.best_score_:.3f})")
    print(f"   Tree depth: {tree.get_depth()}, leaves: {tree.get_n_leaves()}")

    importance = variable_importance(search, X_train.columns)
    _print_importance(importance)

    training_info = {
        'model_type': 'tree',
        'train_size': len(X_train),
        'scoring': scoring,
        'sampling': sampling,
        'best_cp': best_cp,
        'best_params': search.best_params_,
        'best_score': search.best_score_,
        'tuning_param': 'cp',
        'tuning_results': tuning,
        'tree_depth': tree.get_depth(),
        'n_leaves': tree.get_n_leaves(),
        'variable_importance': importance,
    }

    return search, training_info


def _tuning_table(search: GridSearchCV, param: str) -> pd.DataFrame:
    """Mean and SD of the CV score for every candidate value."""

    results = search.cv_results_
    return pd.DataFrame({
        param: np.asarray(results[f'param_{param}'], dtype=float),
        'mean_score': results['mean_test_score'],
        'std_score': results['std_test_score'],
    })


def final_estimator(model):
    """Unwrap GridSearchCV / Pipeline down to the fitted classifier."""

    if hasattr(model, 'best_estimator_'):
        model = model.best_estimator_
    if hasattr(model, 'named_steps'):
        model = model.named_steps['clf']
    return model


def lasso_coefficients(model, feature_names: Sequence[str]) -> pd.DataFrame:
    """Coefficients of the fitted LASSO on the standardized scale."""

    clf = final_estimator(model)
    return pd.DataFrame({
        'feature': list(feature_names),
        'coefficient': clf.coef_.ravel()
    })


def variable_importance(model, feature_names: Sequence[str]) -> pd.DataFrame:
    """
    Rank features by importance, scaled to 0-100.

    Linear models use the absolute coefficient; trees use the impurity-based
    feature_importances_. The most important feature scores 100 and the
    least important 0 (as caret's varImp does).

    Returns
    -------
    pd.DataFrame
        Columns 'feature' and 'importance', sorted descending.
    """

    clf = final_estimator(model)

    if hasattr(clf, 'coef_'):
        raw = np.abs(clf.coef_).ravel()
    elif hasattr(clf, 'feature_importances_'):
        raw = np.asarray(clf.feature_importances_, dtype=float)
    else:
        raise ValueError(f"Cannot compute importance for {type(clf).__name__}")

    spread = raw.max() - raw.min() if len(raw) else 0.0
    if spread > 0:
        scaled = (raw - raw.min()) / spread * 100
    else:
        scaled = np.zeros_like(raw)

    importance = pd.DataFrame({
        'feature': list(feature_names),
        'importance': scaled
    }).sort_values('importance', ascending=False, kind='mergesort')

    return importance.reset_index(drop=True)


def _print_importance(importance: pd.DataFrame, n: int = 10) -> None:
    print(f"\n3. Top {min(n, len(importance))} Most Important Features:")
    for _, row in importance.head(n).iterrows():
        print(f"   {row['importance']:6.1f} - {row['feature']}")


def save_model(
    model,
    output_path: str,
    training_info: Optional[Dict] = None
) -> str:
    """
    Save trained model and metadata.

    Parameters
    ----------
    model : estimator or GridSearchCV
        Trained model to save.
    output_path : str
        Path to save the model.
    training_info : dict, optional
        Training metadata saved alongside the model as <name>.info.joblib.

    Returns
    -------
    str
        Path where model was saved.
    """

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    joblib.dump(model, output_path)
    print(f"Model saved to: {output_path}")

    if training_info:
        info_path = output_path.with_suffix('.info.joblib')
        joblib.dump(training_info, info_path)
        print(f"Training info saved to: {info_path}")

    return str(output_path)


def load_model(model_path: str) -> Tuple[object, Optional[Dict]]:
    """
    Load a saved model and its metadata.

    Returns
    -------
    model : estimator
        Loaded model.
    training_info : dict or None
        Training metadata if available.
    """

    model_path = Path(model_path)
    if not model_path.exists():
        raise FileNotFoundError(f"Model not found at {model_path}")

    model = joblib.load(model_path)
    print(f"Model loaded from: {model_path}")

    info_path = model_path.with_suffix('.info.joblib')
    training_info = None

    if info_path.exists():
        training_info = joblib.load(info_path)
        print(f"Training info loaded from: {info_path}")

    return model, training_info
