# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import time
from typing import Any, Callable, Dict, List, Tuple

# ================================== LOCAL IMPORTS =================================== #

from workflow_otu.utils.data import CommunityData
from workflow_otu.utils.progress import get_progress_bar, _format_task_desc

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("workflow_otu")

Stage = Tuple[str, Callable[[], Any]]

# =============================== HELPER FUNCTIONS =================================== #

class _ProcessingMixin:
    """
    Runs a sequence of pipeline stages with progress tracking and logging.
    """

    def _run_stages(self, stages: List[Stage]) -> Dict[str, Any]:
        results: Dict[str, Any] = {}

        with get_progress_bar(disable=getattr(self, "verbose", False)) as progress:
            task = progress.add_task(_format_task_desc("Running pipeline"), total=len(stages))
            for name, func in stages:
                progress.update(task, description=_format_task_desc(name))

                start_time = time.perf_counter()
                results[name] = func()
                duration = time.perf_counter() - start_time
                self._log_stage(name, results[name], duration)

                progress.update(task, advance=1)
            progress.update(task, description=_format_task_desc("Pipeline complete"))
        return results

    def _log_stage(self, name: str, result: Any, duration: float) -> None:
        if isinstance(result, CommunityData):
            logger.info(
                f"{name + ':':<30}{result.n_samples:>6} samples "
                f"× {result.n_taxa:>5} OTUs"
            )
        logger.debug(f"{name} finished in {duration:.2f}s")
