# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table

# Local Imports
from workflow_otu import constants
from workflow_otu.exceptions import EmptyResultError, ZeroTotalError

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

Predicate = Callable[[pd.Series], bool]

# ================================== DATA CONTAINER ================================== #

@dataclass(frozen=True)
class CommunityData:
    """Abundance, taxonomy and sample metadata joined by key.

    Attributes:
        abundance: Samples × taxa counts.
        taxonomy:  Taxa × ranks, indexed by taxon ID.
        metadata:  Samples × covariates, indexed by sample ID.
    """
    abundance: pd.DataFrame
    taxonomy: pd.DataFrame
    metadata: pd.DataFrame

    @property
    def n_samples(self) -> int:
        return self.abundance.shape[0]

    @property
    def n_taxa(self) -> int:
        return self.abundance.shape[1]

    @property
    def sample_ids(self) -> pd.Index:
        return self.abundance.index

    @property
    def taxon_ids(self) -> pd.Index:
        return self.abundance.columns

    def subset(
        self,
        samples: Optional[Iterable[str]] = None,
        taxa: Optional[Iterable[str]] = None
    ) -> "CommunityData":
        """Return a new dataset restricted to the given samples and/or taxa,
        preserving the original order."""
        abundance = self.abundance
        taxonomy, metadata = self.taxonomy, self.metadata
        if samples is not None:
            keep = self.abundance.index.isin(list(samples))
            abundance = abundance.loc[keep]
            metadata = metadata.loc[abundance.index]
        if taxa is not None:
            keep = self.abundance.columns.isin(list(taxa))
            abundance = abundance.loc[:, keep]
            taxonomy = taxonomy.loc[abundance.columns]
        return replace(
            self,
            abundance=abundance.copy(),
            taxonomy=taxonomy.copy(),
            metadata=metadata.copy()
        )

    def with_abundance(self, abundance: pd.DataFrame) -> "CommunityData":
        """Return a new dataset with replaced counts, realigning the other two
        mappings to the new sample and taxon axes."""
        return replace(
            self,
            abundance=abundance,
            taxonomy=self.taxonomy.loc[abundance.columns].copy(),
            metadata=self.metadata.loc[abundance.index].copy()
        )

# ================================ TABLE CONVERSION ================================== #

def table_to_df(table: Union[Dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Convert various table formats to samples × features DataFrame.

    Args:
        table: Input table in various formats.

    Returns:
        DataFrame in samples × features orientation.

    Raises:
        TypeError: For unsupported input types
    """
    if isinstance(table, pd.DataFrame):  # samples × features
        return table
    if isinstance(table, Table):         # features × samples
        return table.to_dataframe(dense=True).T
    if isinstance(table, dict):          # samples × features
        return pd.DataFrame(table)
    raise TypeError("Input must be BIOM Table, dict, or DataFrame.")


def to_biom(table: Union[Dict, Table, pd.DataFrame]) -> Table:
    """Convert various table formats to BIOM Table with features × samples
    orientation.

    DataFrames are expected in samples × features orientation.

    Raises:
        ValueError: For unsupported input types.
    """
    if isinstance(table, Table):
        return table
    if isinstance(table, dict):
        return Table.from_json(table)
    if isinstance(table, pd.DataFrame):
        return Table(
            table.values.T,
            observation_ids=[str(i) for i in table.columns],
            sample_ids=[str(i) for i in table.index],
            observation_metadata=None,
            sample_metadata=None
        )
    raise ValueError(f"Unsupported table type: {type(table)}")

# ================================ TABLE FILTERING =================================== #

def _check_not_empty(data: CommunityData, stage: str) -> CommunityData:
    if data.n_samples == 0:
        raise EmptyResultError("No samples remain", stage=stage)
    if data.n_taxa == 0:
        raise EmptyResultError("No taxa remain", stage=stage)
    return data


def _apply_predicates(df: pd.DataFrame, predicates: Iterable[Predicate]) -> pd.Series:
    """Row mask where every predicate holds (logical AND)."""
    mask = pd.Series(True, index=df.index)
    if len(df.index) == 0:
        return mask
    for predicate in predicates:
        mask &= df.apply(lambda row: bool(predicate(row)), axis=1).astype(bool)
    return mask


def remove_empty_taxa(data: CommunityData, stage: str = "remove_empty_taxa") -> CommunityData:
    """Drop taxa whose total abundance over the remaining samples is exactly zero."""
    totals = data.abundance.sum(axis=0)
    empty = totals.index[totals == 0]
    if len(empty):
        logger.debug(
            f"Removing {len(empty)} taxa with zero total abundance: "
            f"{list(empty[:5])}"
        )
        data = data.subset(taxa=totals.index[totals != 0])
    return _check_not_empty(data, stage)


def filter_samples(data: CommunityData, *predicates: Predicate) -> CommunityData:
    """Keep samples whose metadata row passes every predicate.

    Taxa left with a zero total once the failing samples are gone are removed
    as well.

    Args:
        data:       Input dataset.
        predicates: Callables taking one metadata row and returning a bool.

    Returns:
        Filtered dataset.

    Raises:
        EmptyResultError: If no samples or taxa remain.
    """
    mask = _apply_predicates(data.metadata, predicates)
    dropped = mask.index[~mask]
    if len(dropped):
        logger.debug(f"Excluding {len(dropped)} samples: {list(dropped[:5])}")
    data = data.subset(samples=mask.index[mask])
    _check_not_empty(data, "filter_samples")
    return remove_empty_taxa(data, stage="filter_samples")


def filter_taxa(data: CommunityData, *predicates: Predicate) -> CommunityData:
    """Keep taxa whose taxonomy row passes every predicate.

    Raises:
        EmptyResultError: If no taxa remain.
    """
    mask = _apply_predicates(data.taxonomy, predicates)
    dropped = mask.index[~mask]
    if len(dropped):
        logger.debug(f"Excluding {len(dropped)} taxa: {list(dropped[:5])}")
    data = data.subset(taxa=mask.index[mask])
    return _check_not_empty(data, "filter_taxa")

# ========================== TABLE NORMALIZATION & PRUNING =========================== #

def scale_to_depth(
    data: CommunityData,
    depth: int,
    rounding: str
) -> CommunityData:
    """Rescale every sample to a common total read depth.

    new_count = round_policy(old_count * depth / row_total). Samples below
    ``depth`` are scaled up, not dropped; this is not strict rarefaction
    (see :func:`rarefy`).

    Args:
        data:     Input dataset.
        depth:    Target total per sample.
        rounding: 'round' (nearest integer, ties to even) or 'floor'.

    Returns:
        Dataset with rescaled integer counts.

    Raises:
        ValueError:     For a non-positive depth or unknown rounding policy.
        ZeroTotalError: If any sample has a zero row total.
    """
    if depth <= 0:
        raise ValueError(f"Normalization depth must be positive, got {depth}")
    if rounding not in constants.ROUNDING_POLICIES:
        raise ValueError(
            f"Invalid rounding policy: '{rounding}'. "
            f"Expected one of {list(constants.ROUNDING_POLICIES)}"
        )

    df = data.abundance.astype(float)
    totals = df.sum(axis=1)
    zero = totals.index[totals == 0]
    if len(zero):
        raise ZeroTotalError(
            "Row total is zero, cannot rescale", stage="scale_to_depth", ids=zero
        )

    n_upsampled = int((totals < depth).sum())
    if n_upsampled:
        logger.info(f"Scaling {n_upsampled} samples up to depth {depth}")

    scaled = df.mul(depth).div(totals, axis=0)
    scaled = np.rint(scaled) if rounding == "round" else np.floor(scaled)
    return data.with_abundance(scaled.astype(np.int64))


def rarefy(data: CommunityData, depth: int, seed: int) -> CommunityData:
    """Subsample every sample to ``depth`` reads without replacement.

    Samples with fewer than ``depth`` reads are dropped.

    Raises:
        ValueError:       For a non-positive depth.
        EmptyResultError: If every sample is below depth.
    """
    if depth <= 0:
        raise ValueError(f"Rarefaction depth must be positive, got {depth}")

    counts = data.abundance.round().astype(np.int64)
    table = to_biom(counts)
    rarefied = table.subsample(
        int(depth), axis='sample', by_id=False, with_replacement=False, seed=seed
    )
    df = table_to_df(rarefied)
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)

    kept = [sid for sid in counts.index if sid in df.index]
    dropped = [sid for sid in counts.index if sid not in df.index]
    if dropped:
        logger.warning(
            f"Dropped {len(dropped)} samples below rarefaction depth {depth}: "
            f"{dropped[:5]}"
        )
    if not kept:
        raise EmptyResultError(
            f"No samples reach rarefaction depth {depth}", stage="rarefy",
            ids=dropped
        )
    df = df.reindex(index=kept, columns=counts.columns, fill_value=0)
    return data.with_abundance(df.astype(np.int64))


def prune_rare_taxa(
    data: CommunityData,
    threshold: float,
    depth: int
) -> CommunityData:
    """Keep taxa whose mean abundance across samples exceeds threshold × depth.

    This is a mean relative abundance filter, not a prevalence filter.

    Args:
        data:      Depth-normalized dataset.
        threshold: Fraction of ``depth`` a taxon's mean must exceed.
        depth:     Depth the dataset was normalized to.

    Raises:
        ValueError:       For a negative threshold or non-positive depth.
        EmptyResultError: If every taxon is pruned.
    """
    if threshold < 0:
        raise ValueError(f"Pruning threshold must be non-negative, got {threshold}")
    if depth <= 0:
        raise ValueError(f"Normalization depth must be positive, got {depth}")

    cutoff = threshold * depth
    means = data.abundance.sum(axis=0) / data.n_samples
    keep = means > cutoff
    if not keep.any():
        logger.warning(
            f"All {data.n_taxa} taxa fall at or below mean abundance {cutoff:g}"
        )
        raise EmptyResultError(
            f"No taxa exceed mean abundance {cutoff:g}", stage="prune_rare_taxa"
        )
    logger.debug(f"Pruned {int((~keep).sum())} taxa at mean abundance <= {cutoff:g}")
    return data.subset(taxa=means.index[keep])

# ================================ TAXONOMIC COLLAPSE ================================ #

def collapse_to_rank(
    data: CommunityData,
    rank: str,
    relative: bool = True
) -> pd.DataFrame:
    """Sum abundance per value of a taxonomic rank for every sample.

    Args:
        data:     Input dataset.
        rank:     Taxonomy column to group by (e.g. 'Phylum').
        relative: Convert each sample's row to proportions.

    Returns:
        Samples × rank-values DataFrame.

    Raises:
        ValueError: If ``rank`` is not a taxonomy column.
    """
    if rank not in data.taxonomy.columns:
        raise ValueError(
            f"Invalid rank: '{rank}'. Expected one of {list(data.taxonomy.columns)}"
        )
    groups = data.taxonomy.loc[data.taxon_ids, rank].fillna(constants.UNCLASSIFIED)
    collapsed = data.abundance.T.groupby(groups.values).sum().T
    collapsed.columns.name = rank
    if relative:
        totals = collapsed.sum(axis=1)
        collapsed = collapsed.div(totals.where(totals != 0), axis=0).fillna(0.0)
    return collapsed
