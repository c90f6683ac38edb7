# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass

# Third‑Party Imports
import pandas as pd

# Local Imports
from workflow_otu.exceptions import MissingLabelError
from workflow_otu.utils.data import CommunityData

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

# ==================================================================================== #

@dataclass(frozen=True)
class FeatureMatrix:
    """Samples × taxa feature values with one nominal label per sample."""
    X: pd.DataFrame
    y: pd.Series
    label_column: str

    @property
    def classes(self) -> list:
        return list(self.y.cat.categories)


def build_feature_matrix(data: CommunityData, label_column: str) -> FeatureMatrix:
    """Attach a label column from sample metadata to the abundance table.

    Label values are treated as unordered categories even when stored as
    numeric codes.

    Args:
        data:         Filtered, normalized and pruned dataset.
        label_column: Metadata column holding the class label.

    Returns:
        FeatureMatrix with X indexed like ``data.abundance``.

    Raises:
        MissingLabelError: If the column is absent or any sample lacks a value.
        ValueError:        If fewer than two classes are present.
    """
    if label_column not in data.metadata.columns:
        raise MissingLabelError(
            f"Label column '{label_column}' not found in metadata",
            stage="build_feature_matrix"
        )
    labels = data.metadata.loc[data.sample_ids, label_column]
    missing = labels.index[labels.isna() | (labels.astype(str).str.strip() == "")]
    if len(missing):
        raise MissingLabelError(
            f"Samples missing '{label_column}' values",
            stage="build_feature_matrix", ids=missing
        )

    y = pd.Series(
        pd.Categorical(labels.astype(str).str.strip(), ordered=False),
        index=data.sample_ids,
        name=label_column
    )
    y = y.cat.remove_unused_categories()
    if len(y.cat.categories) < 2:
        raise ValueError(
            f"Label column '{label_column}' has {len(y.cat.categories)} class(es); "
            "at least two are needed to train a classifier"
        )

    X = data.abundance.copy()
    X.columns.name = "taxon"
    logger.info(
        f"{'Feature matrix:':<30}{X.shape[0]:>6} samples × {X.shape[1]:>5} OTUs"
    )
    logger.debug(f"Class counts: {y.value_counts().to_dict()}")
    return FeatureMatrix(X=X, y=y, label_column=label_column)
