# ===================================== IMPORTS ====================================== #

# Standard Imports
import logging
from pathlib import Path
from typing import Union

# Third Party Imports
import pandas as pd

# Local Imports
from workflow_otu.constants import DEFAULT_META_ID_COLUMN

logger = logging.getLogger("workflow_otu")

# ==================================================================================== #

def normalize_ids(ids: pd.Index) -> pd.Index:
    """Normalize IDs by converting to string, stripping whitespace, and lowercasing."""
    return pd.Index(ids).astype(str).str.strip().str.lower()


def _check_duplicate_ids(ids: pd.Index, id_column: str) -> None:
    """Raise if two sample IDs collide after normalization."""
    norm = normalize_ids(ids)
    duplicated = norm[norm.duplicated(keep=False)]
    if len(duplicated):
        unique_duplicates = duplicated.unique()
        originals = ids[norm.isin(unique_duplicates)].unique()
        raise ValueError(
            f"Found {len(unique_duplicates)} duplicate sample IDs in metadata "
            f"column '{id_column}'\n"
            f"Normalized duplicates: {list(unique_duplicates[:5])}\n"
            f"Original values: {list(originals[:5])}"
        )


def import_metadata_tsv(
    tsv_path: Union[str, Path],
    id_column: str = DEFAULT_META_ID_COLUMN
) -> pd.DataFrame:
    """Load a sample metadata table indexed by its primary-key column.

    Args:
        tsv_path:  Path to metadata file (.tsv/.txt tab-separated, .csv).
        id_column: Column holding sample IDs.

    Returns:
        Metadata DataFrame indexed by sample ID (string).

    Raises:
        FileNotFoundError: If specified path doesn't exist.
        KeyError:          If ``id_column`` is missing.
        ValueError:        For duplicate sample IDs.
    """
    tsv_path = Path(tsv_path)
    if not tsv_path.exists():
        raise FileNotFoundError(f"Metadata file not found: {tsv_path}")

    sep = ',' if tsv_path.suffix.lower() == '.csv' else '\t'
    df = pd.read_csv(tsv_path, sep=sep, dtype={id_column: str})
    df.columns = df.columns.str.strip()

    if id_column not in df.columns:
        raise KeyError(
            f"Metadata ID column '{id_column}' not found in {tsv_path}. "
            f"Columns: {list(df.columns)[:10]}"
        )

    # QIIME metadata may carry a '#q2:types' directive row
    directive = df[id_column].astype(str).str.startswith('#q2:')
    if directive.any():
        df = df.loc[~directive]

    df[id_column] = df[id_column].astype(str).str.strip()
    _check_duplicate_ids(pd.Index(df[id_column]), id_column)

    df = df.set_index(id_column)
    df.index.name = id_column
    logger.debug(f"Read metadata {tsv_path}: {df.shape[0]} samples × {df.shape[1]} cols")
    return df
