# Clinical Machine Learning Tutorial: HCV Liver Disease and NHANES Diabetes
# Modular Machine Learning Pipeline

from .data_loader import load_hcv_data, load_nhanes_data, save_processed_data
from .preprocessing import (
    drop_missing_rows,
    collapse_hcv_category,
    encode_binary_target,
    find_correlated_features,
    center_scale,
    prepare_hcv_data,
    prepare_nhanes_data
)
from .eda import run_eda, plot_correlation_heatmap, plot_outcome_distribution
from .model import (
    create_data_partition,
    make_cv_control,
    train_lasso_model,
    train_tree_model,
    variable_importance,
    save_model,
    load_model
)
from .evaluation import (
    evaluate_model,
    confusion_matrix_stats,
    find_optimal_threshold,
    plot_confusion_matrix,
    plot_roc_curve,
    plot_tuning_curve,
    plot_decision_tree,
    explain_with_shap
)

__version__ = "1.0.0"
