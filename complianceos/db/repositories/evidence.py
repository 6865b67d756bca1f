"""Evidence repositories."""

from complianceos.db.models import Evidence, EvidenceFile
from complianceos.db.repositories.base import BaseRepository

evidence_repo = BaseRepository(Evidence)
evidence_file_repo = BaseRepository(EvidenceFile)
