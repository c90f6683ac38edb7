"""
OTU Community Classification Pipeline
----------------------------------------------------------------------------------------
Loads an OTU abundance table, taxonomy and sample metadata, filters and rescales the
community data, trains a random forest to tell sampling groups apart and reports the
OTUs that matter most to it.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Third-Party Imports
import pandas as pd

# Local Imports
from workflow_otu import constants
from workflow_otu.amplicon_data.analysis import CommunityAnalysis
from workflow_otu.config import get_config
from workflow_otu.exceptions import PipelineError
from workflow_otu.logger import setup_logging

# ========================== INITIALIZATION & CONFIGURATION ========================== #

pd.set_option('display.max_colwidth', None)

# =================================== MAIN WORKFLOW ================================== #

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Train a random forest on OTU abundances and rank OTUs by importance."
    )
    parser.add_argument(
        "--config", type=Path, default=constants.DEFAULT_CONFIG_PATH,
        help="Path to the YAML configuration file."
    )
    parser.add_argument(
        "--output-dir", type=Path, default=None,
        help="Directory for results (overrides config 'output_dir')."
    )
    parser.add_argument(
        "--log-dir", type=Path, default=None,
        help="Directory for log files (default: <output-dir>/logs)."
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Show DEBUG messages on the console instead of progress bars."
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = get_config(args.config)

    output_dir = Path(args.output_dir or config.get("output_dir", constants.DEFAULT_OUTPUT_DIR))
    logger = setup_logging(
        args.log_dir or output_dir / "logs",
        console_level=logging.DEBUG if args.verbose else logging.INFO
    )

    try:
        analysis = CommunityAnalysis(config, verbose=args.verbose).run()
        analysis.save(output_dir)
    except PipelineError as e:
        logger.error(f"Pipeline failed at stage '{e.stage}': {e}")
        return 1

    logger.info(f"OOB error: {analysis.model.oob_error:.2%}")
    logger.info(
        "Top features:\n%s",
        analysis.ranking[["rank", "taxon", "importance", "taxonomy"]].to_string(index=False)
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
