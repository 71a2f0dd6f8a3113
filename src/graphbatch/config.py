"""
Run configuration.
"""

from __future__ import annotations

import os
import typing as t

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from graphbatch.enums import OutputMode

MAX_BATCH_SIZE = 20
ENV_PREFIX = "GRAPHBATCH_"


class BatchSettings(BaseModel):
    """
    Tunables of a batch run.

    Attributes
    ----------
    batch_size : int
        Maximum number of requests per ``$batch`` call. The service rejects
        more than 20.
    timeout_seconds : float
        Window, from the start of the run, during which throttled requests
        are retried. ``0`` disables retries.
    idle_interval_seconds : float
        Pause when every pending request is cooling down.
    default_retry_after_seconds : float
        Cooldown used when a 429 response carries no ``Retry-After`` header.
    output_mode : OutputMode
        Shape of the emitted records.
    paging : bool
        Follow ``@odata.nextLink`` continuations.
    base_url : str
        Service root the batch endpoint lives under.
    batch_endpoint : str
        Batch path relative to ``base_url``.
    http_timeout_seconds : float
        Timeout of a single batch submission.
    """

    batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    timeout_seconds: float = Field(default=300.0, ge=0)
    idle_interval_seconds: float = Field(default=1.0, gt=0)
    default_retry_after_seconds: float = Field(default=5.0, ge=0)
    output_mode: OutputMode = OutputMode.plain
    paging: bool = True
    base_url: str = "https://graph.microsoft.com/v1.0"
    batch_endpoint: str = "$batch"
    http_timeout_seconds: float = Field(default=100.0, gt=0)

    @classmethod
    def from_env(cls, **overrides: t.Any) -> BatchSettings:
        """
        Build settings from ``GRAPHBATCH_*`` environment variables.

        A ``.env`` file in the working directory is loaded first. Keyword
        overrides win over the environment; ``None`` overrides are ignored.

        Parameters
        ----------
        **overrides : typing.Any
            Explicit field values.

        Returns
        -------
        BatchSettings
            Validated settings.
        """
        load_dotenv()
        values: dict[str, t.Any] = {}
        for name in cls.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = env_value
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)
