# SQLAlchemy models
from .base import Base
from .catalog import Activity, ContentModule, CurriculumStandard
from .progress import Attempt, CompetencyProgress, Learner, ModuleProgress, Reward

__all__ = [
    # Base
    "Base",
    # Catalog
    "CurriculumStandard",
    "ContentModule",
    "Activity",
    # Progress
    "Learner",
    "Attempt",
    "ModuleProgress",
    "CompetencyProgress",
    "Reward",
]
