#!/usr/bin/env python3
"""
Clinical Machine Learning Tutorial Pipeline
===========================================

Two worked case studies with scikit-learn:

A. HCV: classify liver disease (hepatitis, fibrosis, cirrhosis) vs. no
   evidence of disease from blood markers with LASSO logistic regression.
B. NHANES: predict diabetes from demographic and lifestyle variables with a
   pruned classification tree.

Each case study runs the same sequence:
1. Data Loading (local CSV or UCI ML Repository)
2. Cleaning (complete cases, outcome recoding, encoding)
3. Exploratory Data Analysis
4. Train/Test Partition (stratified, seeded)
5. Cross-Validated Tuning (lambda or cp grid)
6. Variable Importance
7. Evaluation on held-out data (confusion matrix, ROC)
8. SHAP explanations (optional)

Usage:
------
    python main.py                              # Run both case studies
    python main.py --dataset hcv --hcv-path data/hcvdat0.csv
    python main.py --dataset nhanes --nhanes-path data/nhanes.csv
    python main.py --sampling down --metric roc_auc
    python main.py --skip-eda --skip-shap       # Faster
"""

import argparse
import sys
import warnings
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict

import matplotlib.pyplot as plt

# Suppress warnings for cleaner output
warnings.filterwarnings('ignore')

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent))

from clinical_ml.data_loader import load_hcv_data, load_nhanes_data, save_processed_data
from clinical_ml.preprocessing import prepare_hcv_data, prepare_nhanes_data
from clinical_ml.eda import run_eda
from clinical_ml.model import (
    DEFAULT_SEED,
    create_data_partition,
    make_cv_control,
    lasso_lambda_grid,
    train_lasso_model,
    train_tree_model,
    save_model
)
from clinical_ml.evaluation import (
    evaluate_model,
    plot_tuning_curve,
    plot_decision_tree,
    print_tree_rules,
    plot_variable_importance,
    explain_with_shap
)


def print_header():
    """Print pipeline header."""

    header = """
╔══════════════════════════════════════════════════════════════════════════════╗
║                    CLINICAL MACHINE LEARNING TUTORIAL                        ║
║                                                                              ║
║          HCV Liver Disease (LASSO)  ·  NHANES Diabetes (Classification Tree) ║
╚══════════════════════════════════════════════════════════════════════════════╝
    """
    print(header)
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("="*80 + "\n")


def print_section(title: str):
    """Print section separator."""
    print("\n" + "="*80)
    print(f"  {title}")
    print("="*80 + "\n")


def _split(X, y, p: float, seed: int):
    train_idx, test_idx = create_data_partition(y, p=p, random_state=seed)
    return (
        X.iloc[train_idx], y.iloc[train_idx],
        X.iloc[test_idx], y.iloc[test_idx]
    )


def run_hcv_analysis(
    data_path: Optional[str] = None,
    use_ucimlrepo: bool = True,
    output_dir: str = "outputs",
    seed: int = DEFAULT_SEED,
    p: float = 0.7,
    folds: int = 10,
    repeats: int = 1,
    metric: str = 'accuracy',
    sampling: Optional[str] = None,
    correlation_cutoff: Optional[float] = 0.9,
    lambdas=None,
    skip_eda: bool = False,
    skip_shap: bool = False,
    save_data: bool = True
) -> Dict:
    """
    Case study A: liver disease vs. no evidence of disease.

    Returns
    -------
    dict
        Model search object, training info, evaluation results and
        preprocessing info.
    """

    out = Path(output_dir) / "hcv"

    print_section("HCV STEP 1: DATA LOADING")
    df = load_hcv_data(data_path, use_ucimlrepo=use_ucimlrepo)

    print_section("HCV STEP 2: DATA CLEANING")
    X, y, preprocessing_info = prepare_hcv_data(df, correlation_cutoff=correlation_cutoff)
    class_names = preprocessing_info['class_names']

    if save_data:
        save_processed_data(
            X.assign(outcome=y),
            str(out / "processed_data.csv"),
            "processed HCV features and target"
        )

    if not skip_eda:
        print_section("HCV STEP 3: EXPLORATORY DATA ANALYSIS")
        run_eda(X, y, class_names=class_names, output_dir=str(out / "eda"))
    else:
        print_section("HCV STEP 3: EXPLORATORY DATA ANALYSIS (SKIPPED)")

    print_section("HCV STEP 4: TRAIN/TEST PARTITION")
    X_train, y_train, X_test, y_test = _split(X, y, p, seed)

    print_section("HCV STEP 5: LASSO TUNING")
    method = 'repeatedcv' if repeats > 1 else 'cv'
    cv = make_cv_control(method, number=folds, repeats=repeats, random_state=seed)
    search, training_info = train_lasso_model(
        X_train, y_train,
        lambdas=lambdas if lambdas is not None else lasso_lambda_grid(),
        cv=cv,
        scoring=metric,
        sampling=sampling,
        random_state=seed
    )
    training_info['feature_columns'] = X.columns.tolist()
    training_info['preprocessing_info'] = preprocessing_info

    eval_dir = out / "evaluation"
    eval_dir.mkdir(parents=True, exist_ok=True)
    plot_tuning_curve(
        training_info['tuning_results'], 'lambda',
        scoring=metric,
        best_value=training_info['best_lambda'],
        log_x=True,
        save_path=eval_dir / "tuning_curve.png"
    )
    plot_variable_importance(
        training_info['variable_importance'],
        save_path=eval_dir / "variable_importance.png"
    )
    plt.close('all')

    save_model(search.best_estimator_, str(out / "model" / "lasso_model.joblib"), training_info)

    print_section("HCV STEP 6: EVALUATION ON TEST SET")
    eval_results = evaluate_model(
        search, X_test, y_test,
        class_names=class_names,
        output_dir=str(eval_dir)
    )

    shap_results = None
    if not skip_shap:
        print_section("HCV STEP 7: SHAP EXPLAINABILITY")
        shap_results = explain_with_shap(search, X_train, X_test, output_dir=str(eval_dir))

    return {
        'model': search,
        'training_info': training_info,
        'eval_results': eval_results,
        'shap_results': shap_results,
        'preprocessing_info': preprocessing_info
    }


def run_nhanes_analysis(
    data_path: Optional[str] = None,
    use_ucimlrepo: bool = True,
    output_dir: str = "outputs",
    seed: int = DEFAULT_SEED,
    p: float = 0.7,
    folds: int = 10,
    repeats: int = 1,
    metric: str = 'accuracy',
    sampling: Optional[str] = None,
    cp_grid=None,
    skip_eda: bool = False,
    skip_shap: bool = False,
    save_data: bool = True
) -> Dict:
    """
    Case study B: diabetes prediction with a classification tree.

    Returns
    -------
    dict
        Same layout as run_hcv_analysis.
    """

    out = Path(output_dir) / "nhanes"

    print_section("NHANES STEP 1: DATA LOADING")
    df = load_nhanes_data(data_path, use_ucimlrepo=use_ucimlrepo)

    print_section("NHANES STEP 2: DATA CLEANING")
    X, y, preprocessing_info = prepare_nhanes_data(df)
    class_names = preprocessing_info['class_names']

    if save_data:
        save_processed_data(
            X.assign(Diabetes=y),
            str(out / "processed_data.csv"),
            "processed NHANES features and target"
        )

    if not skip_eda:
        print_section("NHANES STEP 3: EXPLORATORY DATA ANALYSIS")
        run_eda(X, y, class_names=class_names, output_dir=str(out / "eda"))
    else:
        print_section("NHANES STEP 3: EXPLORATORY DATA ANALYSIS (SKIPPED)")

    print_section("NHANES STEP 4: TRAIN/TEST PARTITION")
    X_train, y_train, X_test, y_test = _split(X, y, p, seed)

    print_section("NHANES STEP 5: CLASSIFICATION TREE TUNING")
    method = 'repeatedcv' if repeats > 1 else 'cv'
    cv = make_cv_control(method, number=folds, repeats=repeats, random_state=seed)
    search, training_info = train_tree_model(
        X_train, y_train,
        cp_grid=cp_grid,
        cv=cv,
        scoring=metric,
        sampling=sampling,
        random_state=seed
    )
    training_info['feature_columns'] = X.columns.tolist()
    training_info['preprocessing_info'] = preprocessing_info

    eval_dir = out / "evaluation"
    eval_dir.mkdir(parents=True, exist_ok=True)
    plot_tuning_curve(
        training_info['tuning_results'], 'cp',
        scoring=metric,
        best_value=training_info['best_cp'],
        save_path=eval_dir / "tuning_curve.png"
    )
    plot_decision_tree(
        search, X.columns,
        class_names=class_names,
        max_depth=4,
        save_path=eval_dir / "decision_tree.png"
    )
    plot_variable_importance(
        training_info['variable_importance'],
        save_path=eval_dir / "variable_importance.png"
    )
    plt.close('all')

    print("\nTree rules:")
    training_info['tree_rules'] = print_tree_rules(search, X.columns)

    save_model(search.best_estimator_, str(out / "model" / "tree_model.joblib"), training_info)

    print_section("NHANES STEP 6: EVALUATION ON TEST SET")
    eval_results = evaluate_model(
        search, X_test, y_test,
        class_names=class_names,
        output_dir=str(eval_dir)
    )

    shap_results = None
    if not skip_shap:
        print_section("NHANES STEP 7: SHAP EXPLAINABILITY")
        shap_results = explain_with_shap(search, X_train, X_test, output_dir=str(eval_dir))

    return {
        'model': search,
        'training_info': training_info,
        'eval_results': eval_results,
        'shap_results': shap_results,
        'preprocessing_info': preprocessing_info
    }


def main(
    dataset: str = 'both',
    hcv_path: Optional[str] = None,
    nhanes_path: Optional[str] = None,
    use_ucimlrepo: bool = True,
    output_dir: str = "outputs",
    seed: int = DEFAULT_SEED,
    p: float = 0.7,
    folds: int = 10,
    repeats: int = 1,
    metric: str = 'accuracy',
    sampling: Optional[str] = None,
    correlation_cutoff: Optional[float] = 0.9,
    skip_eda: bool = False,
    skip_shap: bool = False,
    save_data: bool = True
):
    """
    Run the selected case studies.

    Parameters
    ----------
    dataset : {'hcv', 'nhanes', 'both'}
        Which case study to run.
    """

    if dataset not in ('hcv', 'nhanes', 'both'):
        raise ValueError(f"dataset must be 'hcv', 'nhanes' or 'both', got {dataset!r}")

    print_header()

    shared = dict(
        use_ucimlrepo=use_ucimlrepo,
        output_dir=output_dir,
        seed=seed,
        p=p,
        folds=folds,
        repeats=repeats,
        metric=metric,
        sampling=sampling,
        skip_eda=skip_eda,
        skip_shap=skip_shap,
        save_data=save_data
    )

    results = {}

    if dataset in ('hcv', 'both'):
        results['hcv'] = run_hcv_analysis(
            data_path=hcv_path,
            correlation_cutoff=correlation_cutoff,
            **shared
        )

    if dataset in ('nhanes', 'both'):
        results['nhanes'] = run_nhanes_analysis(data_path=nhanes_path, **shared)

    print("\n" + "="*80)
    print("  PIPELINE COMPLETE")
    print("="*80)

    for name, res in results.items():
        ev = res['eval_results']
        print(f"\n{name.upper()}:")
        print(f"  Best CV {metric}: {res['training_info']['best_score']:.3f}")
        print(f"  Test accuracy: {ev['accuracy']:.3f}")
        print(f"  Sensitivity: {ev['sensitivity']:.3f}  Specificity: {ev['specificity']:.3f}")
        print(f"  AUC-ROC: {ev['auc_roc']:.3f}")

    print(f"\nOutputs written to: {output_dir}/")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    return results


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Clinical Machine Learning Tutorial Pipeline"
    )

    parser.add_argument(
        '--dataset',
        choices=['hcv', 'nhanes', 'both'],
        default='both',
        help='Case study to run'
    )

    parser.add_argument(
        '--hcv-path',
        default='data/hcvdat0.csv',
        help='Local HCV CSV (downloaded from UCI if missing)'
    )

    parser.add_argument(
        '--nhanes-path',
        default='data/nhanes.csv',
        help='Local NHANES CSV (UCI subset downloaded if missing)'
    )

    parser.add_argument(
        '--no-download',
        action='store_true',
        help='Never fetch from UCI; require local files'
    )

    parser.add_argument(
        '--output-dir',
        default='outputs',
        help='Directory for plots, models and processed data'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=DEFAULT_SEED,
        help='Random seed for partitioning and resampling'
    )

    parser.add_argument(
        '--p',
        type=float,
        default=0.7,
        help='Proportion of records used for training'
    )

    parser.add_argument(
        '--folds',
        type=int,
        default=10,
        help='Number of cross-validation folds'
    )

    parser.add_argument(
        '--repeats',
        type=int,
        default=1,
        help='Repeat cross-validation (repeatedcv when > 1)'
    )

    parser.add_argument(
        '--metric',
        default='accuracy',
        choices=['accuracy', 'roc_auc', 'balanced_accuracy', 'f1'],
        help='Metric used to select hyperparameters'
    )

    parser.add_argument(
        '--sampling',
        choices=['down', 'up'],
        default=None,
        help='Rebalance classes within each training fold'
    )

    parser.add_argument(
        '--correlation-cutoff',
        type=float,
        default=0.9,
        help='Drop HCV features above this pairwise |r| (negative to disable)'
    )

    parser.add_argument(
        '--skip-eda',
        action='store_true',
        help='Skip EDA visualization generation'
    )

    parser.add_argument(
        '--skip-shap',
        action='store_true',
        help='Skip SHAP explainability analysis (faster)'
    )

    parser.add_argument(
        '--no-save',
        action='store_true',
        help='Do not save the processed data CSV (plots and models are still written)'
    )

    args = parser.parse_args()

    main(
        dataset=args.dataset,
        hcv_path=args.hcv_path,
        nhanes_path=args.nhanes_path,
        use_ucimlrepo=not args.no_download,
        output_dir=args.output_dir,
        seed=args.seed,
        p=args.p,
        folds=args.folds,
        repeats=args.repeats,
        metric=args.metric,
        sampling=args.sampling,
        correlation_cutoff=args.correlation_cutoff if args.correlation_cutoff >= 0 else None,
        skip_eda=args.skip_eda,
        skip_shap=args.skip_shap,
        save_data=not args.no_save
    )
