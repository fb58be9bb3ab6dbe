"""
Model Evaluation Module
=======================

Clinical Context:
-----------------
A screening model is judged on held-out subjects it never saw in training:

1. Sensitivity: what % of diseased subjects did we flag?
   - A missed case (False Negative) delays diagnosis and treatment.

2. Specificity: what % of healthy subjects did we clear?
   - A false alarm (False Positive) means unnecessary follow-up testing.

3. PPV / NPV: how much can a positive / negative result be trusted?
   - Both depend on disease prevalence in the tested population.

4. Accuracy vs. No Information Rate
   - With rare outcomes, always predicting "healthy" already scores high
     accuracy; the model must beat that baseline to be useful.

5. AUC-ROC: ranking quality across all possible thresholds.
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from typing import Dict, Tuple, Optional, Sequence
from pathlib import Path
from scipy import stats

from sklearn.metrics import (
    classification_report,
    confusion_matrix,
    cohen_kappa_score,
    roc_curve,
    auc
)
from sklearn.tree import plot_tree, export_text

import shap

from .model import final_estimator


def _safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else float('nan')


def confusion_matrix_stats(
    y_true: Sequence[int],
    y_pred: Sequence[int],
    positive: int = 1,
    conf_level: float = 0.95
) -> Dict:
    """
    Confusion matrix with the summary statistics clinicians expect.

    Parameters
    ----------
    y_true : array-like
        True binary labels.
    y_pred : array-like
        Predicted binary labels.
    positive : int, default=1
        Label of the positive (diseased) class.
    conf_level : float, default=0.95
        Confidence level of the exact (Clopper-Pearson) accuracy interval.

    Returns
    -------
    dict
        Table counts (tn, fp, fn, tp), accuracy with CI, no information rate,
        P-value [Acc > NIR], kappa, McNemar's test P-value, sensitivity,
        specificity, PPV, NPV, prevalence, detection rate, detection
        prevalence and balanced accuracy. Undefined ratios are NaN.
    """

    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    negative = 1 - positive

    cm = confusion_matrix(y_true, y_pred, labels=[negative, positive])
    tn, fp, fn, tp = (int(v) for v in cm.ravel())
    n = tn + fp + fn + tp
    correct = tp + tn

    alpha = 1 - conf_level
    ci_lower = stats.beta.ppf(alpha / 2, correct, n - correct + 1) if correct > 0 else 0.0
    ci_upper = stats.beta.ppf(1 - alpha / 2, correct + 1, n - correct) if correct < n else 1.0

    nir = _safe_ratio(max(tp + fn, tn + fp), n)
    # One-sided binomial test: P(X >= correct | p = NIR)
    p_acc_nir = stats.binom.sf(correct - 1, n, nir) if n else float('nan')

    # McNemar's test with continuity correction on the discordant cells
    discordant = fp + fn
    if discordant:
        mcnemar_stat = (abs(fp - fn) - 1) ** 2 / discordant
        mcnemar_p = float(stats.chi2.sf(mcnemar_stat, df=1))
    else:
        mcnemar_p = float('nan')

    sensitivity = _safe_ratio(tp, tp + fn)
    specificity = _safe_ratio(tn, tn + fp)

    return {
        'table': cm,
        'tn': tn, 'fp': fp, 'fn': fn, 'tp': tp,
        'accuracy': _safe_ratio(correct, n),
        'accuracy_ci': (float(ci_lower), float(ci_upper)),
        'no_information_rate': nir,
        'p_value_acc_gt_nir': float(p_acc_nir),
        'kappa': float(cohen_kappa_score(y_true, y_pred, labels=[negative, positive])),
        'mcnemar_p_value': mcnemar_p,
        'sensitivity': sensitivity,
        'specificity': specificity,
        'ppv': _safe_ratio(tp, tp + fp),
        'npv': _safe_ratio(tn, tn + fn),
        'prevalence': _safe_ratio(tp + fn, n),
        'detection_rate': _safe_ratio(tp, n),
        'detection_prevalence': _safe_ratio(tp + fp, n),
        'balanced_accuracy': (sensitivity + specificity) / 2,
    }


def print_confusion_stats(cm_stats: Dict, class_names: Sequence[str]) -> None:
    """Print confusion matrix statistics in the layout of caret's confusionMatrix."""

    negative, positive = class_names
    table = pd.DataFrame(
        cm_stats['table'].T,
        index=pd.Index([negative, positive], name='Prediction'),
        columns=pd.Index([negative, positive], name='Reference')
    )

    print("Confusion Matrix and Statistics\n")
    print(table.to_string())
    print()
    lower, upper = cm_stats['accuracy_ci']
    rows = [
        ("Accuracy", f"{cm_stats['accuracy']:.4f}"),
        ("95% CI", f"({lower:.4f}, {upper:.4f})"),
        ("No Information Rate", f"{cm_stats['no_information_rate']:.4f}"),
        ("P-Value [Acc > NIR]", f"{cm_stats['p_value_acc_gt_nir']:.4g}"),
        ("Kappa", f"{cm_stats['kappa']:.4f}"),
        ("Mcnemar's Test P-Value", f"{cm_stats['mcnemar_p_value']:.4g}"),
        ("Sensitivity", f"{cm_stats['sensitivity']:.4f}"),
        ("Specificity", f"{cm_stats['specificity']:.4f}"),
        ("Pos Pred Value", f"{cm_stats['ppv']:.4f}"),
        ("Neg Pred Value", f"{cm_stats['npv']:.4f}"),
        ("Prevalence", f"{cm_stats['prevalence']:.4f}"),
        ("Detection Rate", f"{cm_stats['detection_rate']:.4f}"),
        ("Detection Prevalence", f"{cm_stats['detection_prevalence']:.4f}"),
        ("Balanced Accuracy", f"{cm_stats['balanced_accuracy']:.4f}"),
    ]
    for name, value in rows:
        print(f"{name:>24} : {value}")
    print(f"\n{'Positive Class':>24} : {positive}")


def predict_positive_proba(model, X: pd.DataFrame, positive: int = 1) -> np.ndarray:
    """Probability of the positive class from any fitted classifier."""

    proba = model.predict_proba(X)
    column = list(model.classes_).index(positive)
    return proba[:, column]


def evaluate_model(
    model,
    X_test: pd.DataFrame,
    y_test: pd.Series,
    class_names: Sequence[str] = ('Negative', 'Positive'),
    threshold: float = 0.5,
    output_dir: str = "outputs/evaluation",
    save_plots: bool = True
) -> Dict:
    """
    Evaluate a fitted classifier on held-out data.

    Parameters
    ----------
    model : trained classifier
        Model (or GridSearchCV) with predict_proba and classes_.
    X_test : pd.DataFrame
        Test features.
    y_test : pd.Series
        True binary labels (1 = positive class).
    class_names : (negative, positive)
        Display names of the two classes.
    threshold : float, default=0.5
        Probability cutoff for a positive prediction.
    output_dir : str
        Directory to save evaluation plots.
    save_plots : bool
        Whether to write plots to files.

    Returns
    -------
    dict
        Confusion statistics, classification report, ROC arrays, AUC and
        the Youden-optimal threshold.
    """

    output_path = Path(output_dir)
    if save_plots:
        output_path.mkdir(parents=True, exist_ok=True)

    results = {}

    print("="*60)
    print("MODEL EVALUATION")
    print("="*60)

    y_score = predict_positive_proba(model, X_test)
    y_pred = (y_score >= threshold).astype(int)

    # 1. Confusion Matrix
    print("\n1. CONFUSION MATRIX")
    print("-"*40)
    cm_stats = confusion_matrix_stats(y_test, y_pred)
    results['confusion'] = cm_stats
    results['accuracy'] = cm_stats['accuracy']
    results['sensitivity'] = cm_stats['sensitivity']
    results['specificity'] = cm_stats['specificity']
    print_confusion_stats(cm_stats, class_names)

    # 2. Classification Report
    print("\n2. DETAILED CLASSIFICATION REPORT")
    print("-"*40)
    results['classification_report'] = classification_report(
        y_test, y_pred,
        labels=[0, 1],
        target_names=list(class_names),
        output_dict=True,
        zero_division=0
    )
    print(classification_report(
        y_test, y_pred,
        labels=[0, 1],
        target_names=list(class_names),
        zero_division=0
    ))

    # 3. AUC-ROC
    fpr, tpr, thresholds = roc_curve(y_test, y_score)
    results['auc_roc'] = auc(fpr, tpr)
    results['roc_curve'] = {'fpr': fpr, 'tpr': tpr, 'thresholds': thresholds}
    print(f"\n3. AUC-ROC: {results['auc_roc']:.3f}")

    # 4. Threshold Analysis
    print("\n4. THRESHOLD ANALYSIS")
    print("-"*40)
    optimal = find_optimal_threshold(y_test, y_score)
    results['optimal_threshold'] = optimal
    print(f"   Current threshold: {threshold}")
    print(f"   Optimal threshold (Youden): {optimal['threshold']:.3f} "
          f"(sensitivity {optimal['sensitivity']:.3f}, "
          f"specificity {optimal['specificity']:.3f})")

    # 5. Plots
    if save_plots:
        print("\n5. GENERATING EVALUATION PLOTS...")
        results['confusion_matrix_plot'] = plot_confusion_matrix(
            y_test, y_pred,
            class_names=class_names,
            save_path=output_path / "confusion_matrix.png"
        )
        results['roc_curve_plot'] = plot_roc_curve(
            y_test, y_score,
            optimal=optimal,
            save_path=output_path / "roc_curve.png"
        )
        plt.close('all')

    print("="*60 + "\n")

    return results


def find_optimal_threshold(
    y_true: Sequence[int],
    y_score: np.ndarray
) -> Dict:
    """
    Threshold maximizing Youden's J = sensitivity + specificity - 1.

    Returns
    -------
    dict
        'threshold', 'sensitivity', 'specificity' and 'youden_j'.
    """

    fpr, tpr, thresholds = roc_curve(y_true, y_score)
    j = tpr - fpr
    idx = int(np.argmax(j))

    # roc_curve prepends an infinite threshold that predicts no positives
    threshold = float(min(thresholds[idx], 1.0))

    return {
        'threshold': threshold,
        'sensitivity': float(tpr[idx]),
        'specificity': float(1 - fpr[idx]),
        'youden_j': float(j[idx]),
    }


def plot_confusion_matrix(
    y_true: Sequence[int],
    y_pred: Sequence[int],
    class_names: Sequence[str] = ('Negative', 'Positive'),
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (8, 7)
) -> plt.Figure:
    """
    Plot the confusion matrix as an annotated heatmap.

    Clinical Context:
    -----------------
    - True Positives: diseased subjects correctly flagged
    - False Negatives: diseased subjects missed
    - False Positives: healthy subjects sent for unnecessary work-up
    - True Negatives: healthy subjects correctly cleared
    """

    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])

    fig, ax = plt.subplots(figsize=figsize)

    sns.heatmap(
        cm,
        annot=True,
        fmt='d',
        cmap='Blues',
        ax=ax,
        annot_kws={'size': 16},
        square=True,
        cbar=False
    )

    ax.set_xlabel('Predicted Label', fontsize=13)
    ax.set_ylabel('True Label', fontsize=13)
    ax.set_title('Confusion Matrix (Test Set)', fontsize=15, fontweight='bold')
    ax.set_xticklabels(class_names, fontsize=11)
    ax.set_yticklabels(class_names, fontsize=11, rotation=0)

    tn, fp, fn, tp = cm.ravel()
    total = cm.sum()
    annotation_text = (
        f"Sensitivity: {_safe_ratio(tp, tp + fn):.3f}   "
        f"Specificity: {_safe_ratio(tn, tn + fp):.3f}   "
        f"n = {total:,}"
    )
    fig.text(0.5, 0.01, annotation_text, ha='center', fontsize=11, style='italic')

    plt.tight_layout()
    plt.subplots_adjust(bottom=0.12)

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def plot_roc_curve(
    y_true: Sequence[int],
    y_score: np.ndarray,
    optimal: Optional[Dict] = None,
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (8, 7)
) -> plt.Figure:
    """
    Plot ROC curve with AUC score.

    AUC Interpretation:
    - 0.5: No discrimination (random guessing)
    - 0.7-0.8: Acceptable discrimination
    - 0.8-0.9: Good discrimination
    - >0.9: Excellent discrimination
    """

    fpr, tpr, _ = roc_curve(y_true, y_score)
    roc_auc = auc(fpr, tpr)

    fig, ax = plt.subplots(figsize=figsize)

    ax.plot(fpr, tpr, color='#3498db', lw=3,
            label=f'ROC Curve (AUC = {roc_auc:.3f})')
    ax.plot([0, 1], [0, 1], color='gray', lw=2, linestyle='--',
            label='Random Classifier (AUC = 0.5)')
    ax.fill_between(fpr, tpr, alpha=0.2, color='#3498db')

    if optimal is not None:
        x = 1 - optimal['specificity']
        y = optimal['sensitivity']
        ax.scatter([x], [y], s=100, color='#e74c3c', zorder=5)
        ax.annotate(f"θ={optimal['threshold']:.2f}", xy=(x, y),
                    xytext=(x + 0.05, y - 0.08), fontsize=10)

    ax.set_xlim([0.0, 1.0])
    ax.set_ylim([0.0, 1.05])
    ax.set_xlabel('False Positive Rate (1 - Specificity)', fontsize=13)
    ax.set_ylabel('True Positive Rate (Sensitivity)', fontsize=13)
    ax.set_title('ROC Curve (Test Set)', fontsize=15, fontweight='bold')
    ax.legend(loc='lower right', fontsize=11)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def plot_tuning_curve(
    tuning_results: pd.DataFrame,
    param: str,
    scoring: str = 'accuracy',
    best_value: Optional[float] = None,
    log_x: bool = False,
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (9, 6)
) -> plt.Figure:
    """
    Plot the cross-validated score against a tuning parameter.

    Parameters
    ----------
    tuning_results : pd.DataFrame
        Columns [param, 'mean_score', 'std_score'] from model training.
    param : str
        Name of the tuning parameter column ('lambda' or 'cp').
    best_value : float, optional
        Selected value, marked with a vertical line.
    log_x : bool
        Log-scale x axis (useful for lambda).
    """

    fig, ax = plt.subplots(figsize=figsize)

    x = tuning_results[param]
    mean = tuning_results['mean_score']
    std = tuning_results['std_score']

    ax.plot(x, mean, marker='o', markersize=3, color='#3498db', lw=2)
    ax.fill_between(x, mean - std, mean + std, alpha=0.2, color='#3498db',
                    label='±1 SD across folds')

    if best_value is not None:
        ax.axvline(best_value, color='#e74c3c', linestyle='--',
                   label=f'Selected {param} = {best_value:.4g}')

    if log_x:
        ax.set_xscale('log')

    ax.set_xlabel(param, fontsize=13)
    ax.set_ylabel(f'{scoring} (Cross-Validation)', fontsize=13)
    ax.set_title(f'Tuning Profile: {param}', fontsize=15, fontweight='bold')
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def plot_decision_tree(
    model,
    feature_names: Sequence[str],
    class_names: Sequence[str] = ('Negative', 'Positive'),
    max_depth: Optional[int] = None,
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (18, 10)
) -> plt.Figure:
    """Draw the fitted classification tree."""

    tree = final_estimator(model)

    fig, ax = plt.subplots(figsize=figsize)
    plot_tree(
        tree,
        feature_names=list(feature_names),
        class_names=list(class_names),
        filled=True,
        rounded=True,
        proportion=True,
        impurity=False,
        max_depth=max_depth,
        fontsize=9,
        ax=ax
    )
    ax.set_title('Classification Tree', fontsize=15, fontweight='bold')

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def print_tree_rules(model, feature_names: Sequence[str]) -> str:
    """Print the tree as indented if/then rules and return the text."""

    rules = export_text(final_estimator(model), feature_names=list(feature_names))
    print(rules)
    return rules


def plot_variable_importance(
    importance: pd.DataFrame,
    n_features: int = 15,
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (9, 7)
) -> plt.Figure:
    """Horizontal bar chart of the top features (0-100 scale)."""

    top = importance.head(n_features)

    fig, ax = plt.subplots(figsize=figsize)
    sns.barplot(data=top, x='importance', y='feature', color='#3498db', ax=ax)

    ax.set_xlim(0, 105)
    ax.set_xlabel('Importance (scaled 0-100)', fontsize=13)
    ax.set_ylabel('')
    ax.set_title('Variable Importance', fontsize=15, fontweight='bold')

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def _model_inputs(pipeline, X: pd.DataFrame) -> pd.DataFrame:
    """Apply the pipeline's transformers (not samplers) ahead of the classifier."""

    steps = getattr(pipeline, 'steps', [])
    for name, step in steps[:-1]:
        if name == 'sampler':
            continue
        X = pd.DataFrame(step.transform(X), columns=X.columns, index=X.index)
    return X


def explain_with_shap(
    model,
    X_background: pd.DataFrame,
    X_explain: pd.DataFrame,
    n_samples: int = 100,
    output_dir: str = "outputs/evaluation",
    save_plots: bool = True,
    random_state: int = 42
) -> Dict:
    """
    Generate SHAP explanations for a fitted LASSO or tree model.

    Parameters
    ----------
    model : GridSearchCV or Pipeline
        Fitted model from train_lasso_model / train_tree_model.
    X_background : pd.DataFrame
        Training data used as the reference distribution.
    X_explain : pd.DataFrame
        Records to explain (typically the test set).
    n_samples : int, default=100
        Maximum number of records explained.

    Returns
    -------
    dict
        'shap_values' (records x features, positive class) and
        'feature_importance' (mean |SHAP| per feature, sorted).

    Clinical Context:
    -----------------
    SHAP shows which laboratory values or risk factors pushed an individual
    prediction towards disease, and by how much.
    """

    results = {}

    print("\n" + "="*60)
    print("SHAP EXPLAINABILITY ANALYSIS")
    print("="*60)

    pipeline = model.best_estimator_ if hasattr(model, 'best_estimator_') else model
    clf = final_estimator(pipeline)

    if len(X_explain) > n_samples:
        X_explain = X_explain.sample(n=n_samples, random_state=random_state)

    X_bg = _model_inputs(pipeline, X_background)
    X_ex = _model_inputs(pipeline, X_explain)

    print(f"\n1. Computing SHAP values for {len(X_ex)} records...")

    if hasattr(clf, 'coef_'):
        explainer = shap.LinearExplainer(clf, X_bg)
    else:
        explainer = shap.TreeExplainer(clf)
    shap_values = explainer.shap_values(X_ex)

    # Tree classifiers return one set of values per class
    if isinstance(shap_values, list):
        shap_values = shap_values[-1]
    shap_values = np.asarray(shap_values)
    if shap_values.ndim == 3:
        shap_values = shap_values[:, :, -1]

    results['shap_values'] = shap_values

    feature_importance = pd.DataFrame({
        'feature': X_ex.columns,
        'mean_shap_value': np.abs(shap_values).mean(axis=0)
    }).sort_values('mean_shap_value', ascending=False).reset_index(drop=True)
    results['feature_importance'] = feature_importance

    print("\n2. TOP 10 MOST INFLUENTIAL FEATURES:")
    print("-"*40)
    for _, row in feature_importance.head(10).iterrows():
        print(f"   {row['mean_shap_value']:.4f} - {row['feature']}")

    if save_plots:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        plt.figure(figsize=(10, 8))
        shap.summary_plot(
            shap_values,
            X_ex,
            plot_type="bar",
            show=False,
            max_display=20
        )
        plt.title('SHAP Feature Importance', fontsize=14, fontweight='bold')
        plt.tight_layout()

        save_path = output_path / "shap_feature_importance.png"
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close()
        print(f"   Saved: {save_path}")
        results['feature_importance_plot'] = save_path

    print("="*60 + "\n")

    return results
