# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Third‑Party Imports
import pandas as pd
import yaml

# ================================== LOCAL IMPORTS =================================== #

from workflow_otu import constants
from workflow_otu.amplicon_data.features import FeatureMatrix, build_feature_matrix
from workflow_otu.amplicon_data.helpers import _ProcessingMixin
from workflow_otu.amplicon_data.loader import load_from_config
from workflow_otu.amplicon_data.predicates import predicates_from_config
from workflow_otu.amplicon_data.top_features import rank_importances, save_top_features
from workflow_otu.models.random_forest import (
    TrainedModel, save_feature_importances, train_random_forest
)
from workflow_otu.utils.biom import export_h5py
from workflow_otu.utils.data import (
    CommunityData, collapse_to_rank, filter_samples, filter_taxa, prune_rare_taxa,
    rarefy, scale_to_depth
)

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

# ==================================================================================== #

class CommunityAnalysis(_ProcessingMixin):
    """Loads, filters, normalizes and prunes a community dataset, then trains
    a random forest on one metadata label and ranks the OTUs by importance.

    Every stage produces a new dataset; intermediate datasets are kept in
    ``self.tables`` under 'raw', 'filtered', 'normalized' and 'pruned'.
    """

    def __init__(self, config: Dict, verbose: bool = False):
        self.config, self.verbose = config, verbose

        norm_cfg = config.get("normalization", {})
        self.normalization_method = norm_cfg.get("method", constants.DEFAULT_NORMALIZATION_METHOD)
        self.depth = int(norm_cfg.get("depth", constants.DEFAULT_DEPTH))
        self.rounding = norm_cfg.get("rounding", constants.DEFAULT_ROUNDING)
        self.prune_threshold = float(
            config.get("pruning", {}).get("threshold", constants.DEFAULT_PRUNE_THRESHOLD)
        )

        model_cfg = config.get("model", {})
        self.label_column = model_cfg.get("label_column", constants.DEFAULT_LABEL_COLUMN)
        self.n_trees = int(model_cfg.get("n_trees", constants.DEFAULT_N_TREES))
        self.max_features = model_cfg.get("max_features", constants.DEFAULT_MAX_FEATURES)
        self.random_state = model_cfg.get("random_state", constants.DEFAULT_RANDOM_STATE)
        self.n_jobs = int(model_cfg.get("n_jobs", constants.DEFAULT_N_JOBS))

        self.top_k = int(config.get("ranking", {}).get("top_k", constants.DEFAULT_TOP_K))
        self.composition_ranks = config.get("composition", {}).get(
            "ranks", constants.DEFAULT_COMPOSITION_RANKS
        ) or []

        self.sample_predicates, self.taxon_predicates = predicates_from_config(
            config.get("filters", {})
        )

        self.tables: Dict[str, CommunityData] = {}
        self.composition: Dict[str, pd.DataFrame] = {}
        self.features: Optional[FeatureMatrix] = None
        self.model: Optional[TrainedModel] = None
        self.ranking: Optional[pd.DataFrame] = None
        self.results: Dict[str, Any] = {}

    def run(self, data: Optional[CommunityData] = None) -> "CommunityAnalysis":
        """Run every stage in order. ``data`` skips reading the input files."""
        if data is not None:
            self.tables["raw"] = data

        stages = []
        if data is None:
            stages.append(("Loading tables", self._load))
        stages += [
            ("Filtering samples", self._filter_samples),
            ("Filtering taxa", self._filter_taxa),
            ("Collapsing taxonomy", self._collapse),
            ("Normalizing", self._normalize),
            ("Pruning rare taxa", self._prune),
            ("Building feature matrix", self._build_features),
            ("Training random forest", self._train),
            ("Ranking features", self._rank),
        ]
        self.results = self._run_stages(stages)
        return self

    def _load(self) -> CommunityData:
        self.tables["raw"] = load_from_config(self.config)
        return self.tables["raw"]

    def _filter_samples(self) -> CommunityData:
        self.tables["filtered"] = filter_samples(self.tables["raw"], *self.sample_predicates)
        return self.tables["filtered"]

    def _filter_taxa(self) -> CommunityData:
        self.tables["filtered"] = filter_taxa(self.tables["filtered"], *self.taxon_predicates)
        return self.tables["filtered"]

    def _collapse(self) -> Dict[str, pd.DataFrame]:
        for rank in self.composition_ranks:
            self.composition[rank] = collapse_to_rank(self.tables["filtered"], rank)
        return self.composition

    def _normalize(self) -> CommunityData:
        if self.normalization_method == "rarefy":
            table = rarefy(self.tables["filtered"], self.depth, self.random_state)
        else:
            table = scale_to_depth(self.tables["filtered"], self.depth, self.rounding)
        self.tables["normalized"] = table
        return table

    def _prune(self) -> CommunityData:
        self.tables["pruned"] = prune_rare_taxa(
            self.tables["normalized"], self.prune_threshold, self.depth
        )
        return self.tables["pruned"]

    def _build_features(self) -> FeatureMatrix:
        self.features = build_feature_matrix(self.tables["pruned"], self.label_column)
        return self.features

    def _train(self) -> TrainedModel:
        self.model = train_random_forest(
            self.features,
            n_trees=self.n_trees,
            max_features=self.max_features,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        )
        return self.model

    def _rank(self) -> pd.DataFrame:
        self.ranking = rank_importances(
            self.model, self.tables["pruned"].taxonomy, self.top_k
        )
        return self.ranking

    def summary(self) -> Dict[str, Any]:
        """Plain-type summary of the run (counts, settings and OOB error)."""
        counts = {
            name: {"samples": int(t.n_samples), "otus": int(t.n_taxa)}
            for name, t in self.tables.items()
        }
        summary = {
            "counts": counts,
            "normalization": {
                "method": self.normalization_method,
                "depth": self.depth,
                "rounding": self.rounding,
            },
            "pruning": {"threshold": self.prune_threshold},
            "model": {
                "label_column": self.label_column,
                "n_trees": self.n_trees,
                "max_features": self.max_features,
                "random_state": self.random_state,
            },
        }
        if self.model is not None:
            summary["model"]["classes"] = [str(c) for c in self.model.classes]
            summary["model"]["oob_error"] = float(self.model.oob_error)
        return summary

    def save(self, output_dir: Union[str, Path]) -> Path:
        """Write the ranking, importances, OOB confusion matrix, composition
        tables, normalized BIOM table and a YAML summary."""
        if self.model is None or self.ranking is None:
            raise RuntimeError("Nothing to save; call run() first")
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        save_top_features(self.ranking, output_dir)
        save_feature_importances(self.model, output_dir)
        self.model.oob_confusion.to_csv(output_dir / "oob_confusion.tsv", sep="\t")
        for rank, table in self.composition.items():
            table.to_csv(output_dir / f"composition_{rank.lower()}.tsv", sep="\t")
        export_h5py(
            self.tables["normalized"].abundance, output_dir / "normalized_table.biom"
        )
        with open(output_dir / "summary.yaml", "w") as f:
            yaml.safe_dump(self.summary(), f, sort_keys=False)

        logger.info(f"Results written → {output_dir}")
        return output_dir
