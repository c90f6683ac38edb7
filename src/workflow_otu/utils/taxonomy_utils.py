# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Union

# Third-Party Imports
import pandas as pd

# Local Imports
from workflow_otu import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_otu')

RANK_PREFIX = re.compile(r'^\s*[a-z]__', re.IGNORECASE)
QIIME_ID_COLUMNS = ('Feature ID', 'FeatureID', '#OTU ID', 'OTU ID')
QIIME_TAXON_COLUMNS = ('Taxon', 'taxonomy', 'Taxonomy')

# ==================================== FUNCTIONS ===================================== #

def clean_rank_value(value) -> str:
    """Strip rank prefixes ('p__') and map empty/unassigned values to
    'Unclassified'."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return constants.UNCLASSIFIED
    value = RANK_PREFIX.sub('', str(value)).strip()
    if value.lower() in constants.UNASSIGNED_VALUES:
        return constants.UNCLASSIFIED
    return value


def _extract_level(taxonomy: str, prefix: str) -> Optional[str]:
    """
    Extract one rank from a QIIME taxonomy string.

    Args:
        taxonomy: Raw taxonomy string ('d__Bacteria; p__Firmicutes; ...').
        prefix:   Rank prefix letter (d/p/c/o/f/g).

    Returns:
        Cleaned name for the rank, or None if the rank is absent.
    """
    if not isinstance(taxonomy, str):
        return None
    # Greengenes uses k__ for the top rank
    prefixes = ('d', 'k') if prefix == 'd' else (prefix,)
    for part in taxonomy.split(';'):
        part = part.strip()
        if part[:3].lower() in {f"{p}__" for p in prefixes}:
            return clean_rank_value(part)
    return None


def _parse_taxon_strings(
    taxa: pd.Series,
    rank_names: Sequence[str]
) -> pd.DataFrame:
    prefixes = constants.TAXONOMY_PREFIXES[:len(rank_names)]
    rows = {}
    for feature_id, taxonomy in taxa.items():
        rows[feature_id] = [
            _extract_level(taxonomy, prefix) or constants.UNCLASSIFIED
            for prefix in prefixes
        ]
    return pd.DataFrame.from_dict(rows, orient='index', columns=list(rank_names))


def import_taxonomy_table(
    tsv_path: Union[str, Path],
    rank_names: Sequence[str] = constants.DEFAULT_RANK_NAMES
) -> pd.DataFrame:
    """
    Load a taxonomy table as taxa × ranks.

    Two layouts are understood:
      - QIIME 2 ('Feature ID', 'Taxon'[, 'Confidence']): the taxonomy string
        is split into ranks by prefix.
      - Rank columns: the first column is the taxon ID and the following
        columns are the ranks in order; they are renamed to ``rank_names``.

    Args:
        tsv_path:   Path to taxonomy file (.tsv/.txt tab-separated, .csv).
        rank_names: Names for the ordered rank columns.

    Returns:
        DataFrame indexed by taxon ID with one column per rank.

    Raises:
        FileNotFoundError: If the path doesn't exist.
        ValueError:        For duplicate taxon IDs.
    """
    tsv_path = Path(tsv_path)
    if not tsv_path.exists():
        raise FileNotFoundError(f"Taxonomy file not found: {tsv_path}")

    rank_names = list(rank_names)
    sep = ',' if tsv_path.suffix.lower() == '.csv' else '\t'
    df = pd.read_csv(tsv_path, sep=sep, dtype=str)
    df.columns = df.columns.str.strip()

    taxon_col = next((c for c in QIIME_TAXON_COLUMNS if c in df.columns), None)
    if taxon_col is not None:
        id_col = next((c for c in QIIME_ID_COLUMNS if c in df.columns), df.columns[0])
        ids = df[id_col].astype(str).str.strip()
        taxonomy = _parse_taxon_strings(
            pd.Series(df[taxon_col].values, index=ids), rank_names
        )
    else:
        df = df.set_index(df.columns[0])
        df.index = df.index.astype(str).str.strip()
        rank_cols = list(df.columns[:len(rank_names)])
        if len(rank_cols) < len(rank_names):
            logger.warning(
                f"Taxonomy table has {len(rank_cols)} rank columns, expected "
                f"{len(rank_names)}; missing ranks set to '{constants.UNCLASSIFIED}'"
            )
        taxonomy = df[rank_cols].rename(
            columns=dict(zip(rank_cols, rank_names))
        ).reindex(columns=rank_names)
        taxonomy = taxonomy.apply(lambda col: col.map(clean_rank_value))

    if taxonomy.index.duplicated().any():
        duplicates = taxonomy.index[taxonomy.index.duplicated()].unique()
        raise ValueError(
            f"Found {len(duplicates)} duplicate taxon IDs in {tsv_path}\n"
            f"First 5: {list(duplicates[:5])}"
        )

    taxonomy.index.name = 'taxon'
    logger.debug(f"Read taxonomy {tsv_path}: {taxonomy.shape[0]} taxa")
    return taxonomy


def taxstring(ranks: pd.Series, rank_names: Optional[List[str]] = None) -> str:
    """Join a taxon's ranks into 'Bacteria;Firmicutes;...' stopping at the
    first unclassified rank."""
    rank_names = rank_names or list(ranks.index)
    parts = []
    for rank in rank_names:
        value = ranks.get(rank, constants.UNCLASSIFIED)
        if value == constants.UNCLASSIFIED:
            break
        parts.append(str(value))
    return ';'.join(parts) if parts else constants.UNCLASSIFIED
