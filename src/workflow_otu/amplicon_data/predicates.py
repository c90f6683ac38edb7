# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Iterable, List, Tuple

# Third‑Party Imports
import pandas as pd

# Local Imports
from workflow_otu.utils.data import Predicate
from workflow_otu.utils.taxonomy_utils import clean_rank_value

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

# ==================================== FUNCTIONS ===================================== #

def _as_list(values: Any) -> List[Any]:
    if isinstance(values, (list, tuple, set)):
        return list(values)
    return [values]


def _norm(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip().lower()


def _normalized_set(values: Any) -> set:
    return {_norm(v) for v in _as_list(values)}


def exclude_values(column: str, values: Any) -> Predicate:
    """Sample predicate: True unless ``row[column]`` is one of ``values``.

    Comparison is on stripped, lower-cased strings so that YAML values
    (``2019-06-04``, ``1``) match the metadata's text.
    """
    excluded = _normalized_set(values)

    def predicate(row: pd.Series) -> bool:
        if column not in row.index:
            raise KeyError(f"Metadata column '{column}' not found")
        return _norm(row[column]) not in excluded

    predicate.__name__ = f"exclude_{column}"
    return predicate


def include_values(column: str, values: Any) -> Predicate:
    """Sample predicate: True only if ``row[column]`` is one of ``values``."""
    included = _normalized_set(values)

    def predicate(row: pd.Series) -> bool:
        if column not in row.index:
            raise KeyError(f"Metadata column '{column}' not found")
        return _norm(row[column]) in included

    predicate.__name__ = f"include_{column}"
    return predicate


def exclude_taxa(rank: str, names: Any) -> Predicate:
    """Taxon predicate: drop taxa whose ``rank`` is one of ``names``.

    Rank prefixes ('o__Chloroplast') are ignored on both sides.
    """
    excluded = {clean_rank_value(n).lower() for n in _as_list(names)}

    def predicate(row: pd.Series) -> bool:
        if rank not in row.index:
            raise KeyError(f"Taxonomy rank '{rank}' not found")
        return clean_rank_value(row[rank]).lower() not in excluded

    predicate.__name__ = f"exclude_{rank}"
    return predicate


def require_rank(rank: str, names: Any) -> Predicate:
    """Taxon predicate: keep only taxa whose ``rank`` is one of ``names``."""
    required = {clean_rank_value(n).lower() for n in _as_list(names)}

    def predicate(row: pd.Series) -> bool:
        if rank not in row.index:
            raise KeyError(f"Taxonomy rank '{rank}' not found")
        return clean_rank_value(row[rank]).lower() in required

    predicate.__name__ = f"require_{rank}"
    return predicate


def _build(section: Dict, builders: Iterable[Tuple[str, Any]]) -> List[Predicate]:
    predicates = []
    for key, builder in builders:
        for column, values in (section.get(key) or {}).items():
            predicates.append(builder(column, values))
    return predicates


def predicates_from_config(
    filters: Dict
) -> Tuple[List[Predicate], List[Predicate]]:
    """Build sample and taxon predicates from the ``filters`` config section.

    Example:
        filters:
          samples:
            exclude: {sample_type: [control, blank]}
            include: {size_fraction: ["0.2"]}
          taxa:
            exclude: {Order: [Chloroplast], Family: [Mitochondria]}
            require: {Kingdom: [Bacteria]}

    Returns:
        Tuple of (sample predicates, taxon predicates).
    """
    filters = filters or {}
    sample_predicates = _build(
        filters.get("samples") or {},
        [("exclude", exclude_values), ("include", include_values)]
    )
    taxon_predicates = _build(
        filters.get("taxa") or {},
        [("exclude", exclude_taxa), ("require", require_rank)]
    )
    logger.debug(
        f"Built {len(sample_predicates)} sample and {len(taxon_predicates)} "
        "taxon predicates"
    )
    return sample_predicates, taxon_predicates
