"""Business continuity repositories."""

from complianceos.db.models import BcPlan, BusinessImpactAnalysis, BusinessProcess
from complianceos.db.repositories.base import BaseRepository
from complianceos.schemas.bcp import PlanCreate, PlanUpdate, ProcessCreate, ProcessUpdate


class ProcessRepository(BaseRepository[BusinessProcess, ProcessCreate, ProcessUpdate]):
    def __init__(self):
        super().__init__(BusinessProcess)


class PlanRepository(BaseRepository[BcPlan, PlanCreate, PlanUpdate]):
    def __init__(self):
        super().__init__(BcPlan)


process_repo = ProcessRepository()
bia_repo = BaseRepository(BusinessImpactAnalysis)
plan_repo = PlanRepository()
