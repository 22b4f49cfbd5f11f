# templates.py
"""Built-in column sets for common legal document reviews."""
from __future__ import annotations

from typing import Dict, List

from exceptions import NotFound
from models import ColumnType, Template, TemplateColumn

T = ColumnType

TEMPLATES: List[Template] = [
    Template(
        id="ma-deal-points",
        name="M&A Deal Points",
        description="Extract key terms from SPAs and merger agreements",
        target_documents="SPAs, Merger Agreements",
        columns=[
            TemplateColumn("Purchase Price", "What is the total purchase price or consideration for this transaction?", T.CURRENCY),
            TemplateColumn("Closing Date", "What is the expected or actual closing date for this transaction?", T.DATE),
            TemplateColumn("Reps & Warranties", "Summarize the key representations and warranties made by the seller.", T.TEXT),
            TemplateColumn("Indemnification Cap", "What is the maximum indemnification cap or liability limit?", T.CURRENCY),
            TemplateColumn("Escrow Amount", "What is the escrow amount or holdback, if any?", T.CURRENCY),
            TemplateColumn("Material Adverse Change", "How is Material Adverse Change (MAC) or Material Adverse Effect (MAE) defined?", T.TEXT),
            TemplateColumn("Closing Conditions", "What are the key conditions precedent to closing?", T.TEXT),
        ],
    ),
    Template(
        id="lease-review",
        name="Lease Review",
        description="Analyze commercial lease agreements",
        target_documents="Commercial Leases",
        columns=[
            TemplateColumn("Monthly Rent", "What is the monthly base rent amount?", T.CURRENCY),
            TemplateColumn("Lease Term", "What is the initial term length of the lease?", T.TEXT),
            TemplateColumn("Renewal Options", "What renewal options does the tenant have, including terms and notice requirements?", T.TEXT),
            TemplateColumn("Termination Rights", "What early termination rights exist for either party?", T.TEXT),
            TemplateColumn("Rent Escalation", "How does rent escalate over the lease term (fixed increases, CPI, etc.)?", T.TEXT),
            TemplateColumn("Security Deposit", "What is the security deposit amount?", T.CURRENCY),
            TemplateColumn("Permitted Use", "What is the permitted use of the premises?", T.TEXT),
            TemplateColumn("Assignment Rights", "Can the tenant assign or sublease, and under what conditions?", T.TEXT),
        ],
    ),
    Template(
        id="service-agreements",
        name="Service Agreements",
        description="Review MSAs and SOWs for key commercial terms",
        target_documents="MSAs, SOWs, Service Contracts",
        columns=[
            TemplateColumn("Contract Value", "What is the total contract value or fees?", T.CURRENCY),
            TemplateColumn("Term", "What is the initial term of the agreement?", T.TEXT),
            TemplateColumn("Governing Law", "What is the governing law or jurisdiction?", T.TEXT),
            TemplateColumn("Termination Notice", "How many days written notice is required to terminate?", T.NUMBER),
            TemplateColumn("Auto-Renewal", "Does this agreement automatically renew?", T.BOOLEAN),
            TemplateColumn("Liability Cap", "What is the limitation of liability cap?", T.CURRENCY),
            TemplateColumn("Indemnification", "Summarize the key indemnification obligations.", T.TEXT),
            TemplateColumn("Insurance Requirements", "What insurance coverage is required?", T.TEXT),
        ],
    ),
    Template(
        id="employment-agreements",
        name="Employment Agreements",
        description="Extract terms from offer letters and employment contracts",
        target_documents="Offer Letters, Employment Contracts",
        columns=[
            TemplateColumn("Base Salary", "What is the annual base salary?", T.CURRENCY),
            TemplateColumn("Start Date", "What is the employment start date?", T.DATE),
            TemplateColumn("Title", "What is the job title or position?", T.TEXT),
            TemplateColumn("Reporting To", "Who does this position report to?", T.TEXT),
            TemplateColumn("Non-Compete", "Is there a non-compete clause? If so, what is its duration and scope?", T.TEXT),
            TemplateColumn("Non-Solicit", "Is there a non-solicitation clause? If so, what are its terms?", T.TEXT),
            TemplateColumn("Severance", "What severance is provided upon termination?", T.TEXT),
            TemplateColumn("Equity/Options", "What equity or stock options are granted?", T.TEXT),
        ],
    ),
    Template(
        id="nda-review",
        name="NDA Review",
        description="Analyze confidentiality agreements",
        target_documents="NDAs, Confidentiality Agreements",
        columns=[
            TemplateColumn("Parties", "Who are the parties to this agreement?", T.TEXT),
            TemplateColumn("Effective Date", "What is the effective date of the agreement?", T.DATE),
            TemplateColumn("Term", "What is the term or duration of confidentiality obligations?", T.TEXT),
            TemplateColumn("Confidential Info Definition", "How is Confidential Information defined?", T.TEXT),
            TemplateColumn("Permitted Disclosures", "What disclosures are permitted or excluded?", T.TEXT),
            TemplateColumn("Return/Destruction", "What are the requirements for return or destruction of confidential information?", T.TEXT),
            TemplateColumn("Governing Law", "What is the governing law?", T.TEXT),
        ],
    ),
    Template(
        id="credit-agreements",
        name="Credit Agreements",
        description="Review loan documents for key financial terms",
        target_documents="Loan Agreements, Credit Facilities",
        columns=[
            TemplateColumn("Principal Amount", "What is the principal loan amount or credit facility size?", T.CURRENCY),
            TemplateColumn("Interest Rate", "What is the interest rate (fixed or floating, and any spread)?", T.TEXT),
            TemplateColumn("Maturity Date", "What is the maturity date of the loan?", T.DATE),
            TemplateColumn("Financial Covenants", "What are the key financial covenants (debt ratios, coverage ratios, etc.)?", T.TEXT),
            TemplateColumn("Events of Default", "What are the main events of default?", T.TEXT),
            TemplateColumn("Prepayment Terms", "Are there prepayment penalties or requirements?", T.TEXT),
        ],
    ),
]

_BY_ID: Dict[str, Template] = {t.id: t for t in TEMPLATES}


def get_template(template_id: str) -> Template:
    tpl = _BY_ID.get(template_id)
    if tpl is None:
        raise NotFound(f"Template not found: {template_id}")
    return tpl
