# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Union

# Third-Party Imports
import h5py
import numpy as np
import pandas as pd
from biom import load_table
from biom.table import Table

# Local Imports
from workflow_otu.utils.data import table_to_df, to_biom

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('workflow_otu')

BIOM_SUFFIXES = {'.biom', '.h5', '.hdf5'}

# ==================================== FUNCTIONS ===================================== #

def import_biom(biom_path: Union[str, Path]) -> Table:
    """Load a BIOM table from file.

    Tries HDF5 (BIOM v2) first and falls back to the JSON/TSV readers of
    ``biom.load_table``.

    Args:
        biom_path:
            Path to .biom file.

    Returns:
        BIOM Table object (features × samples).
    """
    try:
        with h5py.File(biom_path, 'r') as f:
            return Table.from_hdf5(f)
    except OSError:
        return load_table(str(biom_path))


def _read_delimited(path: Path) -> pd.DataFrame:
    sep = ',' if path.suffix.lower() == '.csv' else '\t'
    with open(path, 'r') as f:
        first_line = f.readline()
    # `biom convert --to-tsv` writes a comment line above the header
    skiprows = 1 if first_line.startswith('# Constructed from biom') else 0
    # IDs such as 001 or 1.10 must survive; counts are converted afterwards
    df = pd.read_csv(path, sep=sep, index_col=0, skiprows=skiprows, dtype=str)
    df.index = df.index.astype(str).str.strip()
    df.columns = df.columns.astype(str).str.strip()
    return df


def _validate_counts(df: pd.DataFrame, path: Path) -> pd.DataFrame:
    try:
        df = df.apply(pd.to_numeric, errors='raise')
    except (TypeError, ValueError) as e:
        raise ValueError(f"Abundance table contains non-numeric values: {path}") from e
    df = df.fillna(0)
    if (df.values < 0).any():
        raise ValueError(f"Abundance table contains negative counts: {path}")
    return df


def import_abundance_table(table_path: Union[str, Path]) -> pd.DataFrame:
    """Load an abundance table as stored on disk.

    BIOM files come back in samples × features orientation; delimited text
    files keep the orientation they were written in (first column is the
    row index). Orientation is resolved against the metadata by the loader.

    Args:
        table_path: Path to a .biom, .tsv, .txt or .csv file.

    Returns:
        DataFrame of non-negative counts.

    Raises:
        FileNotFoundError: If the path doesn't exist.
        ValueError:        For non-numeric or negative values.
    """
    table_path = Path(table_path)
    if not table_path.exists():
        raise FileNotFoundError(f"Abundance table not found: {table_path}")

    if table_path.suffix.lower() in BIOM_SUFFIXES:
        df = table_to_df(import_biom(table_path))
        df.index = df.index.astype(str)
        df.columns = df.columns.astype(str)
    else:
        df = _read_delimited(table_path)

    df = _validate_counts(df, table_path)
    logger.debug(f"Read abundance table {table_path} with shape {df.shape}")
    return df


def export_h5py(
    table: Union[pd.DataFrame, Table],
    output_path: Union[str, Path],
    generated_by: str = "workflow_otu"
) -> None:
    """Write a samples × features table as a BIOM v2 (HDF5) file.

    Args:
        table:        Samples × features DataFrame or BIOM Table.
        output_path:  Destination path.
        generated_by: Value stored in the BIOM 'generated-by' attribute.
    """
    if isinstance(table, pd.DataFrame):
        table = to_biom(table.astype(np.float64))

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(output_path, 'w') as f:
        table.to_hdf5(f, generated_by=generated_by)
