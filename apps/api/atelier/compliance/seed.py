from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from atelier.compliance.models import ChecklistTemplate
from atelier.compliance.schemas import ChecklistItem, ChecklistSection, TemplateCreate, TemplateRead
from atelier.compliance.service import ComplianceService
from atelier.core.database import SessionLocal
from atelier.logging import configure_logging
from atelier.platform.security.context import AuthContext


logger = logging.getLogger("atelier.compliance.seed")

SOLE_PROPRIETOR_TITLE = "Starting Right: 1099 / Sole Proprietor Compliance (MVP)"
SOLE_PROPRIETOR_REGION = "San Diego County, CA"
SEED_ACTOR = "system.seed"


def sole_proprietor_checklist(year: int) -> TemplateCreate:
    """The starter checklist for 1099 workers and sole proprietors; B1 falls due on January 31 of ``year``."""

    return TemplateCreate(
        title=SOLE_PROPRIETOR_TITLE,
        version="1.0",
        region=SOLE_PROPRIETOR_REGION,
        business_type=None,
        sections=[
            ChecklistSection(
                id="A",
                title="Core Setup",
                description="The essential first steps for freelancers, gig workers, and solo business owners.",
                items=[
                    ChecklistItem(
                        id="A1",
                        label="Register Your Name (DBA)",
                        details="File a 'Doing Business As' name with your county or city if operating under a name other than your legal one.",
                        link="https://data.sandiego.gov/",
                        note="Socrata portal for local license and business lookup in San Diego.",
                        frequency="once",
                    ),
                    ChecklistItem(
                        id="A2",
                        label="Choose a Business Structure",
                        details="Most start as sole proprietors; consider forming an LLC for liability protection.",
                        link="https://www.sba.gov/business-guide/launch/choose-business-structure",
                        note="SBA overview on structure options.",
                        frequency="once",
                    ),
                    ChecklistItem(
                        id="A3",
                        label="Get Your Tax ID (EIN)",
                        details="Apply free through the IRS to avoid using your SSN on contracts and tax forms.",
                        link="https://www.irs.gov/businesses/small-businesses-self-employed/apply-for-an-employer-identification-number-ein-online",
                        frequency="once",
                    ),
                    ChecklistItem(
                        id="A4",
                        label="Check Local Licenses / Permits",
                        details="Most cities in San Diego County require a Business License Certificate or Business Tax Certificate.",
                        link="https://www.sandiegocounty.gov/content/sdc/cosd/businesslicenses.html",
                        frequency="annually",
                    ),
                ],
            ),
            ChecklistSection(
                id="B",
                title="Money & Tax Basics",
                description="Stay compliant with IRS and state reporting. Keep taxes and forms under control.",
                items=[
                    ChecklistItem(
                        id="B1",
                        label="Collect W-9s / Issue 1099-NEC",
                        details="Gather W-9s from contractors and file 1099-NEC by January 31 each year.",
                        link="https://www.irs.gov/forms-pubs/about-form-1099-nec",
                        frequency="annually",
                        due_date=datetime(year, 1, 31, tzinfo=timezone.utc),
                    ),
                    ChecklistItem(
                        id="B2",
                        label="Pay Quarterly Estimated Taxes",
                        details="Pay by April 15, June 15, September 15, and January 15 to cover income and self-employment tax.",
                        link="https://www.irs.gov/businesses/small-businesses-self-employed/estimated-taxes",
                        frequency="quarterly",
                    ),
                    ChecklistItem(
                        id="B3",
                        label="Track Expenses & Deductions",
                        details="Keep digital records of mileage, home office, supplies, and tools. Use bookkeeping software or spreadsheets.",
                        frequency="monthly",
                    ),
                    ChecklistItem(
                        id="B4",
                        label="Sales / Use Tax (if applicable)",
                        details="Apply for a California Seller's Permit if you sell taxable goods or services.",
                        link="https://www.cdtfa.ca.gov",
                        frequency="once",
                    ),
                ],
            ),
            ChecklistSection(
                id="C",
                title="Protect & Stay Informed",
                description="Low-effort habits that keep your business safe and future-proof.",
                items=[
                    ChecklistItem(
                        id="C1",
                        label="Get Basic Insurance",
                        details="Consider general or professional liability coverage. Required if hiring workers (check CA rules).",
                        frequency="annually",
                    ),
                    ChecklistItem(
                        id="C2",
                        label="Check Worker Classification",
                        details="Learn whether you're an employee or contractor under IRS and CA AB-5 rules.",
                        link="https://www.sba.gov/employee-vs-independent-contractor",
                        frequency="once",
                    ),
                    ChecklistItem(
                        id="C3",
                        label="Stay Updated on Rules",
                        details="New IRS, DOL, or OSHA rules tagged 'small entity' appear in the Federal Register.",
                        link="https://www.federalregister.gov/api/v1/documents.json?conditions[term]=small%20entity",
                        frequency="quarterly",
                    ),
                    ChecklistItem(
                        id="C4",
                        label="Small Entity Compliance Guides",
                        details="Plain-language guidance from the SBA Ombudsman on how new regulations affect small businesses.",
                        link="https://www.sba.gov/ombudsman/compliance-guides",
                        frequency="quarterly",
                    ),
                ],
            ),
        ],
        metadata={
            "source": "Federal Register API, SBA Ombudsman, IRS, CDTFA, City of San Diego Socrata",
            "maintainer": "MicroAI Studios",
            "region": SOLE_PROPRIETOR_REGION,
            "lastUpdated": "2025-10-16",
        },
    )


class ComplianceSeedHelper:
    def __init__(self, service: ComplianceService) -> None:
        self._service = service

    def ensure_sole_proprietor_checklist(self, session: Session, *, now: datetime | None = None) -> TemplateRead | None:
        """Insert the starter checklist unless a template with its title already exists."""

        existing = session.scalar(select(ChecklistTemplate.id).where(ChecklistTemplate.title == SOLE_PROPRIETOR_TITLE))
        if existing is not None:
            logger.info("compliance.seed_skipped", extra={"checklist_id": str(existing)})
            return None

        year = (now or datetime.now(timezone.utc)).year
        ctx = AuthContext(user_id=SEED_ACTOR, is_super_admin=True)
        return self._service.upsert_template(session, ctx, sole_proprietor_checklist(year))


compliance_seed_helper = ComplianceSeedHelper(ComplianceService())


def main() -> None:
    configure_logging()
    with SessionLocal() as session:
        template = compliance_seed_helper.ensure_sole_proprietor_checklist(session)
    if template is not None:
        item_count = sum(len(section.items) for section in template.sections)
        logger.info("compliance.seeded", extra={"checklist_id": str(template.id), "count": item_count})


if __name__ == "__main__":
    main()
