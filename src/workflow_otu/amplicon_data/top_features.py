# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Union

# Third‑Party Imports
import pandas as pd

# ================================== LOCAL IMPORTS =================================== #

from workflow_otu import constants
from workflow_otu.models.random_forest import TrainedModel
from workflow_otu.utils.taxonomy_utils import taxstring

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

# ==================================================================================== #

def rank_importances(
    model: TrainedModel,
    taxonomy: pd.DataFrame,
    top_k: int
) -> pd.DataFrame:
    """Rank taxa by importance and join the top ``top_k`` to their taxonomy.

    Ties keep the feature column order of the model (stable sort), so the
    same model always yields the same table.

    Args:
        model:    Trained model.
        taxonomy: Taxa × ranks, must cover every feature of the model.
        top_k:    Number of taxa to report.

    Returns:
        DataFrame with columns rank, taxon, importance, taxonomy, and one
        column per taxonomic rank.

    Raises:
        ValueError: For a non-positive ``top_k``.
        KeyError:   If a ranked taxon has no taxonomy row.
    """
    if top_k <= 0:
        raise ValueError(f"top_k must be a positive integer, got {top_k}")

    importances = model.importances
    ranked = importances.sort_values(ascending=False, kind="mergesort").head(top_k)
    missing = ranked.index.difference(taxonomy.index)
    if len(missing):
        raise KeyError(f"No taxonomy for ranked taxa: {list(missing[:5])}")

    ranks = taxonomy.loc[ranked.index]
    table = pd.DataFrame({
        "rank": range(1, len(ranked) + 1),
        "taxon": ranked.index.astype(str),
        "importance": ranked.values,
        "taxonomy": [taxstring(ranks.loc[t]) for t in ranked.index],
    })
    for col in ranks.columns:
        table[col] = ranks[col].fillna(constants.UNCLASSIFIED).values

    if len(ranked) < top_k:
        logger.debug(f"Only {len(ranked)} features available for top {top_k}")
    logger.info(
        f"{'Top feature:':<30}{table['taxon'].iloc[0]} "
        f"({table['taxonomy'].iloc[0]}, importance {table['importance'].iloc[0]:.4f})"
    )
    return table


def save_top_features(table: pd.DataFrame, output_dir: Union[str, Path]) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "top_features.tsv"
    table.to_csv(output_path, sep="\t", index=False)
    return output_path
