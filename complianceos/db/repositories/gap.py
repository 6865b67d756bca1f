"""Gap assessment and task repositories."""

from complianceos.db.models import GapAssessment, ProjectTask
from complianceos.db.repositories.base import BaseRepository

gap_assessment_repo = BaseRepository(GapAssessment)
task_repo = BaseRepository(ProjectTask)
