# certledger/contract/seed.py
from typing import List

from certledger.core.types import Approval, Certificate, Issuer

SEED_CERTIFICATES: List[Certificate] = [
    Certificate(
        record_id="CERT-2025-ORG1-00001",
        subject_id="learner001",
        issuer=Issuer(issuer_id="issuer123", issue_date="2025-11-29T10:30:00Z"),
        approval=Approval(
            approver_ids=["approver77"],
            stages=["Issued"],
            approved=True,
            approved_date="2025-11-30T14:00:00Z",
        ),
        payload={
            "name": "National Apprenticeship Certificate",
            "category": "Master of Agriculture",
            "institution": "Skill Institute of Agriculture",
            "level": "Level 4",
        },
        status="Issued",
        url="https://example.com/certificates/CERT-2025-ORG1-00001",
    ),
    Certificate(
        record_id="CERT-2025-ORG1-00002",
        subject_id="learner002",
        issuer=Issuer(issuer_id="issuer456", issue_date="2025-12-01T09:00:00Z"),
        approval=Approval(
            approver_ids=["approver88"],
            stages=["Pending"],
            approved=False,
            approved_date=None,
        ),
        payload={
            "name": "Software Development Certificate",
            "category": "Full Stack Development",
            "institution": "Tech Academy",
            "level": "Level 5",
        },
        status="Pending",
        url="https://example.com/certificates/CERT-2025-ORG1-00002",
    ),
    Certificate(
        record_id="CERT-2025-ORG1-00003",
        subject_id="learner003",
        issuer=Issuer(issuer_id="issuer789", issue_date="2025-12-02T11:15:00Z"),
        approval=Approval(
            approver_ids=["approver77", "approver88"],
            stages=["Approved", "Approved"],
            approved=True,
            approved_date="2025-12-02T12:00:00Z",
        ),
        payload={
            "name": "Professional Data Science Certificate",
            "category": "Machine Learning and AI",
            "institution": "Data Science Institute",
            "level": "Level 6",
            "duration": "12 months",
            "grade": "A+",
        },
        status="Issued",
        url="https://example.com/certificates/CERT-2025-ORG1-00003",
    ),
]
