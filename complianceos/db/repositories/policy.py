"""Policy and employee repositories."""

from complianceos.db.models import ClientPolicy, Employee, PolicyException
from complianceos.db.repositories.base import BaseRepository
from complianceos.schemas.policy import PolicyCreate, PolicyUpdate


class PolicyRepository(BaseRepository[ClientPolicy, PolicyCreate, PolicyUpdate]):
    def __init__(self):
        super().__init__(ClientPolicy)


policy_repo = PolicyRepository()
employee_repo = BaseRepository(Employee)
policy_exception_repo = BaseRepository(PolicyException)
