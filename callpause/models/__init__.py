# Models package - keep exports light; db_models is imported directly where
# SQLModel table registration matters (alembic env, init_db, tests).
from .pause_models import (
    ExternalCallResult,
    PauseReasonDefinition,
    PauseReasonSummary,
    PauseResult,
    UnpauseResult,
)

__all__ = [
    "ExternalCallResult",
    "PauseReasonDefinition",
    "PauseReasonSummary",
    "PauseResult",
    "UnpauseResult",
]
