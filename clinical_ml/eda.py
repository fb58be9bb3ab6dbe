"""
Exploratory Data Analysis Module
================================

Clinical Context:
-----------------
Before fitting anything, look at the data:
1. How common is the outcome? (prevalence sets the accuracy baseline)
2. Which laboratory values move together? (redundant markers)
3. Do feature distributions differ between diseased and healthy subjects?
"""

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from typing import Optional, List, Tuple, Sequence
from pathlib import Path


# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")

OUTCOME_COLORS = ['#2ecc71', '#e74c3c']  # Green for negative, red for positive


def run_eda(
    X: pd.DataFrame,
    y: pd.Series,
    class_names: Sequence[str] = ('Negative', 'Positive'),
    output_dir: str = "outputs/eda",
    save_plots: bool = True
) -> dict:
    """
    Run EDA and generate visualizations.

    Parameters
    ----------
    X : pd.DataFrame
        Feature matrix (preprocessed).
    y : pd.Series
        Binary target variable (1 = positive class).
    class_names : (negative, positive)
        Display names of the two classes.
    output_dir : str
        Directory to save plots.
    save_plots : bool
        Whether to save plots to files.

    Returns
    -------
    dict
        EDA results and statistics.
    """

    output_path = Path(output_dir)
    if save_plots:
        output_path.mkdir(parents=True, exist_ok=True)

    def _path(name: str) -> Optional[Path]:
        return output_path / name if save_plots else None

    results = {}

    print("="*60)
    print("EXPLORATORY DATA ANALYSIS")
    print("="*60)

    # 1. Basic Statistics
    print("\n1. Dataset Overview")
    print(f"   Total samples: {len(X):,}")
    print(f"   Total features: {X.shape[1]}")
    results['n_samples'] = len(X)
    results['n_features'] = X.shape[1]

    # 2. Target Distribution
    print("\n2. Outcome Distribution")
    prevalence = y.mean() * 100
    print(f"   {class_names[1]}: {int(y.sum()):,} ({prevalence:.2f}%)")
    print(f"   {class_names[0]}: {int(len(y) - y.sum()):,} ({100 - prevalence:.2f}%)")
    results['prevalence'] = prevalence

    # 3. Generate Plots
    print("\n3. Generating Visualizations...")

    results['outcome_plot'] = plot_outcome_distribution(
        y, class_names=class_names, save_path=_path("outcome_distribution.png")
    )
    results['correlation_plot'] = plot_correlation_heatmap(
        X, y, save_path=_path("correlation_heatmap.png")
    )
    results['distribution_plot'] = plot_feature_distributions(
        X, y, class_names=class_names, save_path=_path("feature_distributions.png")
    )
    plt.close('all')

    # 4. Feature Statistics
    print("\n4. Key Feature Statistics")
    numeric_cols = X.select_dtypes(include=[np.number]).columns
    stats_df = X[numeric_cols].describe().T
    results['feature_stats'] = stats_df
    print(stats_df[['mean', 'std', 'min', 'max']].round(2).to_string())

    print("\n" + "="*60)
    print("EDA Complete! Plots saved to:", output_path if save_plots else "Not saved")
    print("="*60)

    return results


def plot_outcome_distribution(
    y: pd.Series,
    class_names: Sequence[str] = ('Negative', 'Positive'),
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (10, 5)
) -> plt.Figure:
    """
    Bar and pie chart of the binary outcome.

    Clinical Context:
    -----------------
    The majority-class share is the accuracy a model gets for free; the
    confusion matrix reports it as the No Information Rate.
    """

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    counts = y.value_counts().reindex([0, 1], fill_value=0)

    ax1 = axes[0]
    bars = ax1.bar(list(class_names), counts.values, color=OUTCOME_COLORS,
                   edgecolor='black', linewidth=1.5)
    ax1.set_ylabel('Number of Subjects', fontsize=12)
    ax1.set_title('Outcome Distribution', fontsize=14, fontweight='bold')

    for bar, count in zip(bars, counts.values):
        ax1.text(bar.get_x() + bar.get_width()/2, bar.get_height(),
                 f'{count:,}', ha='center', va='bottom', fontsize=11, fontweight='bold')

    ax2 = axes[1]
    ax2.pie(
        counts.values,
        labels=list(class_names),
        autopct='%1.1f%%',
        colors=OUTCOME_COLORS,
        startangle=90,
        textprops={'fontsize': 11}
    )
    ax2.set_title('Prevalence', fontsize=14, fontweight='bold')

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def plot_correlation_heatmap(
    X: pd.DataFrame,
    y: pd.Series,
    n_features: int = 15,
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (11, 9)
) -> plt.Figure:
    """
    Correlation heatmap of the features most correlated with the outcome.

    Note: pairs with high |r| are candidates for find_correlated_features.
    """

    target = y.name or 'outcome'
    df_combined = X.select_dtypes(include=[np.number]).copy()
    df_combined[target] = y

    correlations = df_combined.corr()[target].drop(target)
    top_features = correlations.abs().nlargest(n_features).index.tolist()
    top_features.append(target)

    fig, ax = plt.subplots(figsize=figsize)

    correlation_matrix = df_combined[top_features].corr()
    mask = np.triu(np.ones_like(correlation_matrix, dtype=bool), k=1)

    sns.heatmap(
        correlation_matrix,
        mask=mask,
        annot=True,
        fmt='.2f',
        cmap='RdBu_r',
        center=0,
        vmin=-1,
        vmax=1,
        square=True,
        linewidths=0.5,
        ax=ax,
        cbar_kws={'label': 'Correlation Coefficient', 'shrink': 0.8},
        annot_kws={'size': 9}
    )

    ax.set_title(f'Feature Correlation Heatmap\n(Top {len(top_features) - 1} Features by Outcome Correlation)',
                 fontsize=14, fontweight='bold', pad=20)

    plt.xticks(rotation=45, ha='right')
    plt.yticks(rotation=0)
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig


def plot_feature_distributions(
    X: pd.DataFrame,
    y: pd.Series,
    features: Optional[List[str]] = None,
    class_names: Sequence[str] = ('Negative', 'Positive'),
    save_path: Optional[Path] = None,
    figsize: Tuple[int, int] = (14, 10)
) -> plt.Figure:
    """
    Boxplots of key features stratified by outcome.

    Parameters
    ----------
    features : list, optional
        Features to show. Defaults to the (up to) six non-indicator numeric
        features most correlated with the outcome.
    """

    if features is None:
        numeric = X.select_dtypes(include=[np.number])
        # Skip 0/1 indicator columns, boxplots of them are uninformative
        continuous = [c for c in numeric.columns if numeric[c].nunique() > 2]
        correlations = numeric[continuous].corrwith(y).abs().sort_values(ascending=False)
        features = correlations.index[:6].tolist()

    n_features = max(len(features), 1)
    n_cols = 3
    n_rows = (n_features + n_cols - 1) // n_cols

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    outcome_label = y.map({0: class_names[0], 1: class_names[1]})

    for idx, feature in enumerate(features):
        ax = axes[idx]

        plot_df = pd.DataFrame({
            feature: X[feature].values,
            'Outcome': outcome_label.values
        })

        sns.boxplot(
            data=plot_df,
            x='Outcome',
            y=feature,
            hue='Outcome',
            ax=ax,
            palette=OUTCOME_COLORS,
            order=list(class_names),
            hue_order=list(class_names),
            legend=False
        )

        ax.set_title(feature, fontsize=11, fontweight='bold')
        ax.set_xlabel('')
        ax.set_ylabel('')

    for idx in range(len(features), len(axes)):
        axes[idx].set_visible(False)

    fig.suptitle('Key Feature Distributions by Outcome',
                 fontsize=14, fontweight='bold', y=1.02)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"   Saved: {save_path}")

    return fig
