# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Sequence, Union

# Third‑Party Imports
import pandas as pd

# Local Imports
from workflow_otu import constants
from workflow_otu.exceptions import EmptyResultError, MissingKeyError
from workflow_otu.utils.biom import import_abundance_table
from workflow_otu.utils.data import CommunityData
from workflow_otu.utils.metadata import (
    _check_duplicate_ids, import_metadata_tsv, normalize_ids
)
from workflow_otu.utils.taxonomy_utils import import_taxonomy_table

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

# ==================================== FUNCTIONS ===================================== #

def _overlap(ids: pd.Index, meta_ids: pd.Index) -> int:
    return len(set(normalize_ids(ids)) & set(meta_ids))


def orient_table(
    table: pd.DataFrame,
    meta: pd.DataFrame,
    orientation: str = constants.DEFAULT_ORIENTATION
) -> pd.DataFrame:
    """Return the abundance table in samples × taxa orientation.

    With ``orientation='auto'`` the axis sharing more IDs with the metadata
    is taken as the sample axis (rows win a tie).

    Raises:
        ValueError:      For an unknown orientation.
        MissingKeyError: If no table IDs match the metadata in auto mode.
    """
    if orientation not in constants.ORIENTATIONS:
        raise ValueError(
            f"Invalid orientation: '{orientation}'. "
            f"Expected one of {list(constants.ORIENTATIONS)}"
        )
    if orientation == "samples_as_rows":
        return table
    if orientation == "taxa_as_rows":
        return table.T

    meta_ids = normalize_ids(meta.index)
    n_rows, n_cols = _overlap(table.index, meta_ids), _overlap(table.columns, meta_ids)
    if n_rows == 0 and n_cols == 0:
        raise MissingKeyError(
            "No table IDs match metadata sample IDs in either orientation\n"
            f"Table IDs (rows): {list(table.index[:5])}\n"
            f"Table IDs (columns): {list(table.columns[:5])}\n"
            f"Metadata IDs: {list(meta.index[:5])}",
            stage="load"
        )
    if n_cols > n_rows:
        logger.debug(f"Using features-as-rows orientation ({n_cols} matches)")
        return table.T
    logger.debug(f"Using samples-as-rows orientation ({n_rows} matches)")
    return table


def _check_duplicate_samples(table: pd.DataFrame) -> None:
    norm = normalize_ids(table.index)
    if norm.duplicated().any():
        duplicates = norm[norm.duplicated()].unique()
        raise ValueError(
            f"Found {len(duplicates)} duplicate sample IDs in abundance table\n"
            f"First 5: {list(duplicates[:5])}"
        )


def join_tables(
    table: pd.DataFrame,
    taxonomy: pd.DataFrame,
    meta: pd.DataFrame,
    missing_metadata: str = constants.DEFAULT_MISSING_METADATA,
    missing_taxonomy: str = constants.DEFAULT_MISSING_TAXONOMY
) -> CommunityData:
    """Join a samples × taxa table with its taxonomy and sample metadata.

    Sample IDs are matched case- and whitespace-insensitively; the abundance
    table's IDs are kept. Taxon IDs are matched exactly.

    Args:
        table:            Samples × taxa counts.
        taxonomy:         Taxa × ranks.
        meta:             Metadata indexed by sample ID.
        missing_metadata: 'drop' or 'raise' for samples without metadata.
        missing_taxonomy: 'drop' or 'raise' for taxa without taxonomy.

    Returns:
        Joined dataset.

    Raises:
        MissingKeyError:  For orphans under the 'raise' policy.
        EmptyResultError: If nothing is left after dropping orphans.
    """
    for name, policy in (("missing_metadata", missing_metadata),
                         ("missing_taxonomy", missing_taxonomy)):
        if policy not in constants.ORPHAN_POLICIES:
            raise ValueError(
                f"Invalid {name} policy: '{policy}'. "
                f"Expected one of {list(constants.ORPHAN_POLICIES)}"
            )
    _check_duplicate_samples(table)
    _check_duplicate_ids(pd.Index(meta.index), meta.index.name or "index")

    # Samples
    meta_lookup = pd.Series(meta.index, index=normalize_ids(meta.index))
    table_norm = normalize_ids(table.index)
    has_meta = table_norm.isin(meta_lookup.index)
    orphans = table.index[~has_meta]
    if len(orphans):
        if missing_metadata == "raise":
            raise MissingKeyError(
                "Samples in abundance table have no metadata row",
                stage="load", ids=orphans
            )
        logger.warning(
            f"Dropping {len(orphans)} samples without metadata: {list(orphans[:5])}"
        )
    table = table.loc[has_meta]
    matched = meta_lookup.loc[table_norm[has_meta]].values
    unused = len(meta) - len(matched)
    if unused:
        logger.debug(f"Ignoring {unused} metadata rows without abundance data")
    aligned_meta = meta.loc[matched].copy()
    aligned_meta.index = table.index

    # Taxa
    has_taxonomy = table.columns.isin(taxonomy.index)
    orphan_taxa = table.columns[~has_taxonomy]
    if len(orphan_taxa):
        if missing_taxonomy == "raise":
            raise MissingKeyError(
                "Taxa in abundance table have no taxonomy row",
                stage="load", ids=orphan_taxa
            )
        logger.warning(
            f"Dropping {len(orphan_taxa)} taxa without taxonomy: {list(orphan_taxa[:5])}"
        )
    table = table.loc[:, has_taxonomy]
    aligned_taxonomy = taxonomy.loc[table.columns].copy()

    data = CommunityData(
        abundance=table.copy(),
        taxonomy=aligned_taxonomy,
        metadata=aligned_meta
    )
    if data.n_samples == 0:
        raise EmptyResultError("No samples remain after join", stage="load")
    if data.n_taxa == 0:
        raise EmptyResultError("No taxa remain after join", stage="load")
    return data


def load_community_data(
    abundance_path: Union[str, Path],
    taxonomy_path: Union[str, Path],
    metadata_path: Union[str, Path],
    metadata_id_column: str = constants.DEFAULT_META_ID_COLUMN,
    orientation: str = constants.DEFAULT_ORIENTATION,
    rank_names: Sequence[str] = constants.DEFAULT_RANK_NAMES,
    missing_metadata: str = constants.DEFAULT_MISSING_METADATA,
    missing_taxonomy: str = constants.DEFAULT_MISSING_TAXONOMY
) -> CommunityData:
    """Read the three input tables and join them into one dataset."""
    meta = import_metadata_tsv(metadata_path, metadata_id_column)
    taxonomy = import_taxonomy_table(taxonomy_path, rank_names)
    table = orient_table(import_abundance_table(abundance_path), meta, orientation)

    data = join_tables(table, taxonomy, meta, missing_metadata, missing_taxonomy)
    logger.info(
        f"{'Loaded metadata:':<30}{data.metadata.shape[0]:>6} samples "
        f"× {data.metadata.shape[1]:>5} cols"
    )
    logger.info(
        f"{'Loaded features:':<30}{data.n_samples:>6} samples "
        f"× {data.n_taxa:>5} OTUs"
    )
    return data


def load_from_config(config: dict) -> CommunityData:
    input_cfg = config.get("input", {})
    return load_community_data(
        abundance_path=input_cfg["abundance"],
        taxonomy_path=input_cfg["taxonomy"],
        metadata_path=input_cfg["metadata"],
        metadata_id_column=input_cfg.get("metadata_id_column", constants.DEFAULT_META_ID_COLUMN),
        orientation=input_cfg.get("orientation", constants.DEFAULT_ORIENTATION),
        rank_names=input_cfg.get("rank_names", constants.DEFAULT_RANK_NAMES),
        missing_metadata=input_cfg.get("missing_metadata", constants.DEFAULT_MISSING_METADATA),
        missing_taxonomy=input_cfg.get("missing_taxonomy", constants.DEFAULT_MISSING_TAXONOMY),
    )
