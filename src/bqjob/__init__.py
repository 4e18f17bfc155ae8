__version__ = "0.2.0"

from .backoff import Backoff, PollSettings
from .bq import BQ
from .data import Data
from .exceptions import BQError, InvalidConfiguration, SubmissionError
from .query_job import QueryJob, RemoteJobError, Stage, Step
from .updater import (
    CreateDisposition,
    ParameterMode,
    Priority,
    QueryJobConfig,
    QueryJobOptions,
    QueryJobUpdater,
    WriteDisposition,
)

__all__ = [
    "BQ",
    "Backoff",
    "BQError",
    "CreateDisposition",
    "Data",
    "InvalidConfiguration",
    "ParameterMode",
    "PollSettings",
    "Priority",
    "QueryJob",
    "QueryJobConfig",
    "QueryJobOptions",
    "QueryJobUpdater",
    "RemoteJobError",
    "Stage",
    "Step",
    "SubmissionError",
    "WriteDisposition",
]
