"""Vendor and DPA repositories."""

from complianceos.db.models import DpaTemplate, Vendor, VendorDpa
from complianceos.db.repositories.base import BaseRepository
from complianceos.schemas.vendor import DpaTemplateCreate, DpaTemplateUpdate, VendorCreate, VendorUpdate


class VendorRepository(BaseRepository[Vendor, VendorCreate, VendorUpdate]):
    def __init__(self):
        super().__init__(Vendor)


class DpaTemplateRepository(BaseRepository[DpaTemplate, DpaTemplateCreate, DpaTemplateUpdate]):
    def __init__(self):
        super().__init__(DpaTemplate, scope_field="organization_id")


vendor_repo = VendorRepository()
dpa_template_repo = DpaTemplateRepository()
vendor_dpa_repo = BaseRepository(VendorDpa)
