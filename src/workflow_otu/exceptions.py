# ===================================== IMPORTS ====================================== #

# Standard Library Imports
from typing import Iterable, List, Optional

# ==================================================================================== #

def _preview(ids: Iterable, n: int = 5) -> List[str]:
    return [str(i) for i in list(ids)[:n]]


class PipelineError(Exception):
    """Base class for data-quality failures raised by a pipeline stage.

    Attributes:
        stage: Name of the stage that detected the problem.
        ids:   Offending sample or taxon identifiers.
    """

    def __init__(self, message: str, stage: str, ids: Optional[Iterable] = None):
        self.stage = stage
        self.ids = list(ids) if ids is not None else []
        if self.ids:
            message = (
                f"{message} ({len(self.ids)} total)\n"
                f"First 5: {_preview(self.ids)}"
            )
        super().__init__(f"[{stage}] {message}")

    def __str__(self) -> str:
        # KeyError quotes its message otherwise
        return str(self.args[0])


class MissingKeyError(PipelineError, KeyError):
    """A sample or taxon could not be joined to its metadata or taxonomy row."""


class ZeroTotalError(PipelineError, ValueError):
    """A sample with a zero row total was passed to the normalizer."""


class MissingLabelError(PipelineError, KeyError):
    """A retained sample has no value in the label column."""


class EmptyResultError(PipelineError, ValueError):
    """A filter or prune stage removed every sample or taxon."""
