# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

# Third‑Party Imports
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import confusion_matrix

# ================================== LOCAL IMPORTS =================================== #

from workflow_otu.amplicon_data.features import FeatureMatrix

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_otu')

MaxFeatures = Optional[Union[str, int, float]]

# ==================================== FUNCTIONS ===================================== #

@dataclass
class TrainedModel:
    """A fitted random forest and the statistics reported from it.

    Attributes:
        model:         Fitted ``RandomForestClassifier``.
        importances:   Mean decrease in Gini impurity per taxon, in feature
                       column order.
        oob_error:     Out-of-bag misclassification rate.
        oob_confusion: True × predicted class counts over out-of-bag votes.
        classes:       Class labels in the model's order.
    """
    model: RandomForestClassifier
    importances: pd.Series
    oob_error: float
    oob_confusion: pd.DataFrame
    classes: List[str]
    n_trees: int
    max_features: MaxFeatures
    random_state: Optional[int]


def _validate_max_features(max_features: MaxFeatures, n_features: int) -> MaxFeatures:
    if max_features is None or max_features in ("sqrt", "log2"):
        return max_features
    if isinstance(max_features, bool):
        raise ValueError(f"Invalid max_features: {max_features}")
    if isinstance(max_features, int):
        if not 1 <= max_features <= n_features:
            raise ValueError(
                f"max_features must be between 1 and {n_features}, got {max_features}"
            )
        return max_features
    if isinstance(max_features, float):
        if not 0 < max_features <= 1:
            raise ValueError(f"max_features fraction must be in (0, 1], got {max_features}")
        return max_features
    raise ValueError(
        f"Invalid max_features: {max_features!r}. "
        "Expected 'sqrt', 'log2', an int, a fraction or None"
    )


def _oob_confusion(
    rf: RandomForestClassifier,
    y: np.ndarray
) -> pd.DataFrame:
    """Confusion matrix of out-of-bag votes. Samples that were in-bag for
    every tree carry no vote and are left out."""
    decision = rf.oob_decision_function_
    voted = ~np.isnan(decision).any(axis=1) & (decision.sum(axis=1) > 0)
    classes = list(rf.classes_)
    predicted = rf.classes_[np.argmax(decision[voted], axis=1)]
    matrix = confusion_matrix(y[voted], predicted, labels=classes)
    return pd.DataFrame(
        matrix,
        index=pd.Index(classes, name="true"),
        columns=pd.Index(classes, name="predicted")
    )


def _mean_decrease_gini(rf: RandomForestClassifier) -> np.ndarray:
    """Per-feature decrease in Gini impurity, averaged over trees without
    rescaling each tree to sum to 1."""
    return np.mean(
        [tree.tree_.compute_feature_importances(normalize=False)
         for tree in rf.estimators_],
        axis=0
    )


def train_random_forest(
    features: FeatureMatrix,
    n_trees: int,
    max_features: MaxFeatures,
    random_state: Optional[int],
    n_jobs: int = 1
) -> TrainedModel:
    """
    Train a bagged ensemble of Gini classification trees.

    Each tree is grown on a bootstrap resample with a random feature subset
    tried at each split. The out-of-bag samples of each tree give the error
    estimate. Results are reproducible for a fixed ``random_state``
    regardless of ``n_jobs``.

    Args:
        features:     Feature matrix with nominal labels.
        n_trees:      Number of trees.
        max_features: Features tried per split ('sqrt' = √n_features).
        random_state: Random seed.
        n_jobs:       Trees fitted in parallel.

    Returns:
        TrainedModel.

    Raises:
        ValueError: For a non-positive tree count or invalid max_features.
    """
    if n_trees <= 0:
        raise ValueError(f"n_trees must be a positive integer, got {n_trees}")
    X = features.X
    max_features = _validate_max_features(max_features, X.shape[1])
    y = features.y.astype(str).to_numpy()

    rf = RandomForestClassifier(
        n_estimators=n_trees,
        criterion="gini",
        max_features=max_features,
        bootstrap=True,
        oob_score=True,
        random_state=random_state,
        n_jobs=n_jobs,
    )
    with warnings.catch_warnings():
        # Raised when a sample is never out-of-bag with few trees
        warnings.filterwarnings(
            "ignore", message=".*Some inputs do not have OOB scores.*"
        )
        rf.fit(X, y)
        confusion = _oob_confusion(rf, y)

    oob_error = float(1.0 - rf.oob_score_)
    importances = pd.Series(
        _mean_decrease_gini(rf), index=X.columns, name="importance"
    )
    logger.info(
        f"{'Random forest:':<30}{n_trees:>6} trees, "
        f"max_features={max_features}, OOB error {oob_error:.2%}"
    )
    return TrainedModel(
        model=rf,
        importances=importances,
        oob_error=oob_error,
        oob_confusion=confusion,
        classes=list(rf.classes_),
        n_trees=n_trees,
        max_features=max_features,
        random_state=random_state,
    )


def save_feature_importances(
    model: TrainedModel,
    output_dir: Union[str, Path]
) -> Path:
    """
    Save every feature's importance, highest first.

    Args:
        model:      Trained model.
        output_dir: Output directory.

    Returns:
        Path of the written CSV.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "feature_importances.csv"
    model.importances.sort_values(ascending=False, kind="mergesort").to_csv(output_path)
    return output_path
