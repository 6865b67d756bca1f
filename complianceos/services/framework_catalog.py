"""
Built-in framework catalog.

Seeds the frameworks every organization sees (organization_id NULL) with a
representative starter control set. Seeding is idempotent by framework code:
existing frameworks only receive controls they are missing.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from complianceos.db.models import Control, Framework

logger = structlog.get_logger(__name__)

# code → (name, version, description, [(control_code, name, category)])
BUILTIN_FRAMEWORKS: dict[str, tuple[str, str, str, list[tuple[str, str, str]]]] = {
    "ISO27001": (
        "ISO/IEC 27001",
        "2022",
        "Information security management systems",
        [
            ("A.5.1", "Policies for information security", "Organizational"),
            ("A.5.9", "Inventory of information and other associated assets", "Organizational"),
            ("A.5.15", "Access control", "Organizational"),
            ("A.5.19", "Information security in supplier relationships", "Organizational"),
            ("A.5.24", "Information security incident management planning", "Organizational"),
            ("A.5.30", "ICT readiness for business continuity", "Organizational"),
            ("A.6.3", "Information security awareness, education and training", "People"),
            ("A.7.1", "Physical security perimeters", "Physical"),
            ("A.8.5", "Secure authentication", "Technological"),
            ("A.8.8", "Management of technical vulnerabilities", "Technological"),
            ("A.8.13", "Information backup", "Technological"),
            ("A.8.15", "Logging", "Technological"),
        ],
    ),
    "SOC2": (
        "SOC 2",
        "2017 TSC",
        "AICPA Trust Services Criteria",
        [
            ("CC1.1", "Commitment to integrity and ethical values", "Control Environment"),
            ("CC2.1", "Quality information to support internal control", "Communication"),
            ("CC3.1", "Risk assessment objectives", "Risk Assessment"),
            ("CC5.2", "Technology general controls", "Control Activities"),
            ("CC6.1", "Logical access security", "Logical Access"),
            ("CC6.6", "Boundary protection", "Logical Access"),
            ("CC7.2", "Security event monitoring", "System Operations"),
            ("CC7.4", "Incident response", "System Operations"),
            ("CC8.1", "Change management", "Change Management"),
            ("CC9.2", "Vendor risk management", "Risk Mitigation"),
        ],
    ),
    "NIS2": (
        "NIS2 Directive",
        "2022/2555",
        "EU directive on measures for a high common level of cybersecurity",
        [
            ("Art.21(2)(a)", "Risk analysis and information system security policies", "Risk Management"),
            ("Art.21(2)(b)", "Incident handling", "Incident Management"),
            ("Art.21(2)(c)", "Business continuity and crisis management", "Continuity"),
            ("Art.21(2)(d)", "Supply chain security", "Supply Chain"),
            ("Art.21(2)(e)", "Security in acquisition, development and maintenance", "Development"),
            ("Art.21(2)(g)", "Basic cyber hygiene practices and training", "Awareness"),
            ("Art.21(2)(h)", "Cryptography and encryption", "Cryptography"),
            ("Art.21(2)(j)", "Multi-factor authentication", "Access Control"),
            ("Art.23", "Reporting obligations", "Incident Management"),
        ],
    ),
    "CMMC": (
        "CMMC",
        "2.0",
        "Cybersecurity Maturity Model Certification",
        [
            ("AC.L1-3.1.1", "Authorized access control", "Access Control"),
            ("AC.L1-3.1.2", "Transaction and function control", "Access Control"),
            ("IA.L1-3.5.1", "Identification", "Identification and Authentication"),
            ("IA.L1-3.5.2", "Authentication", "Identification and Authentication"),
            ("MP.L1-3.8.3", "Media disposal", "Media Protection"),
            ("PE.L1-3.10.1", "Limit physical access", "Physical Protection"),
            ("SC.L1-3.13.1", "Boundary protection", "System and Communications Protection"),
            ("SI.L1-3.14.1", "Flaw remediation", "System and Information Integrity"),
            ("SI.L1-3.14.2", "Malicious code protection", "System and Information Integrity"),
        ],
    ),
    "GDPR": (
        "GDPR",
        "2016/679",
        "EU General Data Protection Regulation",
        [
            ("Art.5", "Principles relating to processing of personal data", "Principles"),
            ("Art.6", "Lawfulness of processing", "Principles"),
            ("Art.13", "Information to be provided to the data subject", "Transparency"),
            ("Art.15", "Right of access by the data subject", "Data Subject Rights"),
            ("Art.17", "Right to erasure", "Data Subject Rights"),
            ("Art.28", "Processor obligations and DPAs", "Processors"),
            ("Art.30", "Records of processing activities", "Accountability"),
            ("Art.32", "Security of processing", "Security"),
            ("Art.33", "Notification of a personal data breach", "Breach"),
            ("Art.35", "Data protection impact assessment", "Accountability"),
        ],
    ),
    "HIPAA": (
        "HIPAA Security Rule",
        "45 CFR 164",
        "US health information security safeguards",
        [
            ("164.308(a)(1)", "Security management process", "Administrative"),
            ("164.308(a)(3)", "Workforce security", "Administrative"),
            ("164.308(a)(5)", "Security awareness and training", "Administrative"),
            ("164.308(a)(6)", "Security incident procedures", "Administrative"),
            ("164.308(a)(7)", "Contingency plan", "Administrative"),
            ("164.310(a)(1)", "Facility access controls", "Physical"),
            ("164.312(a)(1)", "Access control", "Technical"),
            ("164.312(b)", "Audit controls", "Technical"),
            ("164.312(e)(1)", "Transmission security", "Technical"),
        ],
    ),
}


async def seed_builtin_frameworks(session: AsyncSession) -> dict[str, int]:
    """Insert missing built-in frameworks and controls. Returns counts created."""
    created_frameworks = 0
    created_controls = 0

    for code, (name, version, description, controls) in BUILTIN_FRAMEWORKS.items():
        framework = (
            await session.execute(
                select(Framework).where(
                    Framework.code == code,
                    Framework.organization_id.is_(None),
                )
            )
        ).scalar_one_or_none()
        if framework is None:
            framework = Framework(code=code, name=name, version=version, description=description)
            session.add(framework)
            await session.flush()
            created_frameworks += 1

        existing = set(
            (
                await session.execute(
                    select(Control.control_code).where(Control.framework_id == framework.id)
                )
            ).scalars().all()
        )
        for control_code, control_name, category in controls:
            if control_code in existing:
                continue
            session.add(
                Control(
                    framework_id=framework.id,
                    control_code=control_code,
                    name=control_name,
                    category=category,
                )
            )
            created_controls += 1

    await session.flush()
    if created_frameworks or created_controls:
        logger.info(
            "builtin_frameworks_seeded",
            frameworks=created_frameworks,
            controls=created_controls,
        )
    return {"frameworks": created_frameworks, "controls": created_controls}
