"""
Compliance report assembly.

The JSON report aggregates the workspace's posture; the CSV export carries
the per-framework breakdown.
"""

import csv
import io
import uuid
from datetime import date, datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import Client
from complianceos.services import compliance, policy_service, risk_service, vendor_service

logger = structlog.get_logger(__name__)

CSV_COLUMNS = ("framework", "total", "implemented", "score")


async def compliance_report(db: AsyncSession, client: Client, today: Optional[date] = None) -> dict:
    client_id: uuid.UUID = client.id
    score = await compliance.compute_compliance_score(db, client_id)
    overdue = await risk_service.overdue_items(db, client_id, limit=1000, today=today)

    report = {
        "client": {"id": str(client.id), "name": client.name, "industry": client.industry},
        "generated_at": datetime.utcnow().isoformat(),
        "compliance": {key: value for key, value in score.items() if key != "evidence"},
        "frameworks": await compliance.framework_breakdown(db, client_id),
        "evidence": score["evidence"],
        "risks": {
            "by_level": await risk_service.level_distribution(db, client_id),
            "open_treatments": await risk_service.open_treatment_count(db, client_id),
        },
        "policies": {
            "coverage": await compliance.policy_coverage(db, client_id),
            "attestation": (await policy_service.attestation_stats(db, client_id)).model_dump(),
        },
        "vendors": (await vendor_service.vendor_stats(db, client_id)).model_dump(),
        "overdue_items": len(overdue),
    }
    logger.info("compliance_report_generated", client_id=str(client_id))
    return report


_FORMULA_PREFIXES = ("=", "+", "@", "\t")


def _csv_cell(value):
    # Spreadsheets evaluate cells starting with these characters as formulas
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def frameworks_csv(rows: list[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: _csv_cell(value) for key, value in row.items()})
    return buffer.getvalue()
