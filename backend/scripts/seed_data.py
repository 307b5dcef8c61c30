#!/usr/bin/env python3
"""
Reference Data Seed Script
Loads the compliance account-type catalog and sample state resources.

Usage:
    python -m scripts.seed_data

Re-running is safe: account types are upserted by (name, state) and
resources by (state, compliance_type, title).
"""
import json
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, init_db
from app.models.db_models import ComplianceAccountTypeDB, StateResourceDB


STATE_RESOURCES = [
    {
        "state": "CA",
        "compliance_type": "SOS Registration",
        "title": "California Secretary of State Business Registration",
        "description": (
            "All businesses operating in California must register with the Secretary of State. "
            "This includes LLCs, corporations, and foreign entities doing business in the state."
        ),
        "required_documents": "Articles of Organization/Incorporation, Statement of Information, Registered Agent designation",
        "filing_frequency": "Initial filing, then biennial updates",
        "fees": "$70 filing fee + $20 Statement of Information",
        "portal_link": "https://bizfileonline.sos.ca.gov/",
        "additional_notes": "Statement of Information must be filed within 90 days of registration and every 2 years thereafter.",
    },
    {
        "state": "NY",
        "compliance_type": "SOS Registration",
        "title": "New York Department of State Business Registration",
        "description": (
            "Foreign and domestic entities must file with the NY Department of State. "
            "LLCs must also publish notice of formation in designated newspapers."
        ),
        "required_documents": "Articles of Organization, Certificate of Publication, Registered Agent information",
        "filing_frequency": "Initial filing, biennial reports",
        "fees": "$200 filing fee + publication costs ($1,000-$1,500)",
        "portal_link": "https://www.dos.ny.gov/corporations/",
        "additional_notes": "Publication requirement must be completed within 120 days of filing.",
    },
    {
        "state": "TX",
        "compliance_type": "SOS Registration",
        "title": "Texas Secretary of State Business Filing",
        "description": (
            "All entities conducting business in Texas must register with the Secretary of State "
            "and obtain a certificate of authority."
        ),
        "required_documents": "Certificate of Formation, Registered Agent designation, Beneficial Ownership Information",
        "filing_frequency": "Initial filing, annual reports (franchises)",
        "fees": "$300 filing fee",
        "portal_link": "https://www.sos.state.tx.us/corp/index.shtml",
        "additional_notes": "Texas requires annual franchise tax reports for most entities.",
    },
    {
        "state": "FL",
        "compliance_type": "SOS Registration",
        "title": "Florida Department of State Division of Corporations",
        "description": (
            "Florida requires all business entities to register with the Division of Corporations. "
            "This includes filing articles and maintaining an active registered agent."
        ),
        "required_documents": "Articles of Organization/Incorporation, Registered Agent designation, Annual Report",
        "filing_frequency": "Initial filing, annual reports",
        "fees": "$125 filing fee + $138.75 annual report",
        "portal_link": "https://dos.myflorida.com/sunbiz/",
        "additional_notes": "Annual reports are due by May 1st each year. Late fees apply after deadline.",
    },
    {
        "state": "CA",
        "compliance_type": "Unemployment Insurance",
        "title": "California Employment Development Department (EDD) Registration",
        "description": (
            "Employers with employees in California must register with the EDD for unemployment "
            "insurance and state payroll tax purposes."
        ),
        "required_documents": "Federal EIN, business formation documents, employee information",
        "filing_frequency": "Quarterly wage reports, annual tax returns",
        "fees": "Variable based on wages and experience rating",
        "portal_link": "https://www.edd.ca.gov/",
        "additional_notes": "Registration must be completed within 15 days of paying wages over $100.",
    },
    {
        "state": "WA",
        "compliance_type": "SOS Registration",
        "title": "Washington Secretary of State Business Licensing",
        "description": (
            "Washington requires business registration with the Secretary of State and may require "
            "additional local business licenses."
        ),
        "required_documents": "Certificate of Formation, UBI application, Registered Agent",
        "filing_frequency": "Initial filing, annual reports",
        "fees": "$200 filing fee",
        "portal_link": "https://www.sos.wa.gov/corps/",
        "additional_notes": "Washington issues a Unified Business Identifier (UBI) number for state tax purposes.",
    },
]

# (name, state, agency, description, required fields, default duration in months)
ACCOUNT_TYPES = [
    ("Employer Payroll Tax Account", "CA", "Employment Development Department (EDD)",
     "State unemployment insurance and payroll tax account",
     ["entityName", "registrationNumber", "filingDate"], "3"),
    ("Sales and Use Tax Permit", "CA", "California Department of Tax and Fee Administration (CDTFA)",
     "Permit for collecting and remitting sales tax",
     ["entityName", "registrationNumber", "expirationDate"], "1"),
    ("SOS Business Entity", "CA", "Secretary of State",
     "Business entity registration (LLC, Corporation, etc.)",
     ["entityName", "registrationNumber", "filingDate"], "24"),
    ("Workers' Compensation Insurance", "CA", "Department of Industrial Relations",
     "Workers compensation coverage requirement",
     ["entityName", "registrationNumber", "expirationDate"], "12"),
    ("Employer Unemployment Account", "NY", "Department of Labor",
     "Unemployment insurance employer account",
     ["entityName", "registrationNumber", "filingDate"], "3"),
    ("Sales Tax Certificate of Authority", "NY", "Department of Taxation and Finance",
     "Certificate to collect and remit sales tax",
     ["entityName", "registrationNumber"], "3"),
    ("Business Entity Filing", "NY", "Department of State",
     "Business formation and registration",
     ["entityName", "registrationNumber", "filingDate"], "24"),
    ("Withholding Tax Account", "NY", "Department of Taxation and Finance",
     "Employer withholding tax registration",
     ["entityName", "registrationNumber"], "3"),
    ("Texas Unemployment Account", "TX", "Texas Workforce Commission",
     "Unemployment insurance employer account",
     ["entityName", "registrationNumber", "filingDate"], "3"),
    ("Sales and Use Tax Permit", "TX", "Texas Comptroller of Public Accounts",
     "Permit for sales and use tax collection",
     ["entityName", "registrationNumber", "expirationDate"], "1"),
    ("Certificate of Formation", "TX", "Secretary of State",
     "Business entity formation filing",
     ["entityName", "registrationNumber", "filingDate"], "12"),
    ("Franchise Tax Account", "TX", "Texas Comptroller of Public Accounts",
     "Texas franchise tax reporting account",
     ["entityName", "registrationNumber"], "12"),
    ("Reemployment Tax Account", "FL", "Department of Revenue",
     "Unemployment insurance tax account",
     ["entityName", "registrationNumber", "filingDate"], "3"),
    ("Sales and Use Tax Registration", "FL", "Department of Revenue",
     "Registration for sales tax collection",
     ["entityName", "registrationNumber"], "1"),
    ("Sunbiz Entity Registration", "FL", "Division of Corporations",
     "Business entity registration",
     ["entityName", "registrationNumber", "filingDate", "expirationDate"], "12"),
    ("Unemployment Insurance Account", "WA", "Employment Security Department",
     "Employer unemployment insurance account",
     ["entityName", "registrationNumber", "filingDate"], "3"),
    ("Business License (UBI)", "WA", "Department of Revenue",
     "Unified Business Identifier and state business license",
     ["entityName", "registrationNumber", "expirationDate"], "12"),
    ("Retail Sales Tax License", "WA", "Department of Revenue",
     "License for collecting retail sales tax",
     ["entityName", "registrationNumber", "expirationDate"], "1"),
    ("Business Entity Registration", "WA", "Secretary of State",
     "Business formation and registration",
     ["entityName", "registrationNumber", "filingDate"], "12"),
]


def seed_account_types(db: Session) -> int:
    """Upsert the account-type catalog. Returns number of rows written."""
    count = 0
    for name, state, agency, description, required, duration in ACCOUNT_TYPES:
        values = {
            "state_agency": agency,
            "description": description,
            "required_fields": json.dumps(required),
            "default_duration": duration,
            "is_active": True,
        }
        existing = db.query(ComplianceAccountTypeDB).filter(
            ComplianceAccountTypeDB.name == name,
            ComplianceAccountTypeDB.state == state,
        ).first()

        if existing:
            for key, value in values.items():
                setattr(existing, key, value)
        else:
            db.add(ComplianceAccountTypeDB(id=str(uuid4()), name=name, state=state, **values))
        count += 1
    return count


def seed_resources(db: Session) -> int:
    """Insert sample resources not already present. Returns number inserted."""
    count = 0
    for resource in STATE_RESOURCES:
        existing = db.query(StateResourceDB).filter(
            StateResourceDB.state == resource["state"],
            StateResourceDB.compliance_type == resource["compliance_type"],
            StateResourceDB.title == resource["title"],
        ).first()
        if existing:
            continue
        db.add(StateResourceDB(id=str(uuid4()), **resource))
        count += 1
    return count


def main():
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        resources = seed_resources(db)
        account_types = seed_account_types(db)
        db.commit()
        print(f"Created {resources} sample resources")
        print(f"Created/Updated {account_types} compliance account types")
        print("Seeding complete!")
    except Exception as e:
        print(f"Error seeding database: {e}")
        db.rollback()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
