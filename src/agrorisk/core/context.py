"""
Per-run context threaded through the pipeline.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from agrorisk.core.config import AgroriskConfig


@dataclass(frozen=True)
class RunContext:
    """Run identifier, configuration and logger of one batch of simulations"""
    run_id: str
    config: AgroriskConfig = field(default_factory=AgroriskConfig)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("agrorisk.run"))

    @classmethod
    def create(cls, config: Optional[AgroriskConfig] = None,
               run_id: Optional[str] = None) -> "RunContext":
        run_id = run_id or uuid.uuid4().hex[:8]
        return cls(
            run_id=run_id,
            config=config or AgroriskConfig(),
            logger=logging.getLogger(f"agrorisk.run.{run_id}"),
        )

    def unit_logger(self, unit_id: str) -> logging.Logger:
        """Child logger for one simulation unit"""
        return self.logger.getChild(unit_id)
