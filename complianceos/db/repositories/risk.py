"""Risk register repositories."""

from complianceos.db.models import RiskAssessment, RiskTreatment, Threat, Vulnerability
from complianceos.db.repositories.base import BaseRepository
from complianceos.schemas.risk import ThreatCreate, ThreatUpdate, VulnerabilityCreate, VulnerabilityUpdate


class ThreatRepository(BaseRepository[Threat, ThreatCreate, ThreatUpdate]):
    def __init__(self):
        super().__init__(Threat)


class VulnerabilityRepository(BaseRepository[Vulnerability, VulnerabilityCreate, VulnerabilityUpdate]):
    def __init__(self):
        super().__init__(Vulnerability)


threat_repo = ThreatRepository()
vulnerability_repo = VulnerabilityRepository()
assessment_repo = BaseRepository(RiskAssessment)
treatment_repo = BaseRepository(RiskTreatment)
