"""
Default lifecycle catalogue seeded on first install.

Six phases covering an AI model's life from registration through
human-in-the-loop oversight. Seeded only when the tenant has no phases yet,
so a reinstall never clobbers a customised catalogue.
"""

_DOC_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
]


def _docs(name, order, required=True):
    return {"name": name, "item_type": "documents", "is_required": required, "display_order": order, "config": {}}


DEFAULT_PHASES = [
    {
        "name": "Registration & Inventory",
        "description": "Initial model registration, ownership assignment, and classification of the AI model.",
        "display_order": 1,
        "items": [
            {"name": "Model Registration Form", "item_type": "documents", "is_required": True, "display_order": 1,
             "config": {"maxFiles": 5, "allowedTypes": _DOC_TYPES}},
            {"name": "Unique Model Identifier", "item_type": "text", "is_required": True, "display_order": 2,
             "config": {"placeholder": "Enter unique model identifier"}},
            {"name": "Model Ownership Record", "item_type": "people", "is_required": True, "display_order": 3,
             "config": {"maxPeople": 10, "roles": ["Owner", "Co-Owner", "Steward"]}},
            {"name": "Purpose & Intended Use", "item_type": "textarea", "is_required": True, "display_order": 4,
             "config": {"placeholder": "Describe the purpose and intended use of this model"}},
            {"name": "Regulatory / Risk Classification", "item_type": "classification", "is_required": True,
             "display_order": 5, "config": {"levels": ["Minimal", "Low", "Medium", "High", "Critical"]}},
            {"name": "Model Dependencies", "item_type": "textarea", "is_required": False, "display_order": 6,
             "config": {"placeholder": "List any model dependencies or upstream/downstream systems"}},
        ],
    },
    {
        "name": "Design & Development",
        "description": "Documentation of model design, data lineage, feature engineering, and development assessments.",
        "display_order": 2,
        "items": [
            _docs("Model Design Document", 1),
            _docs("Data Lineage & Quality Assessment", 2),
            _docs("Feature Documentation Sheet", 3),
            _docs("Explainability Assessment (SHAP/LIME)", 4),
            _docs("Bias & Fairness Assessment", 5),
            _docs("Security & Adversarial Robustness Review", 6, required=False),
            _docs("Version Control Log", 7, required=False),
        ],
    },
    {
        "name": "Validation & Testing",
        "description": "Validation test plans, performance evaluation, bias testing, and stress testing outputs.",
        "display_order": 3,
        "items": [
            _docs("Validation Test Plan", 1),
            _docs("Performance Evaluation Results", 2),
            _docs("Bias Testing Results & Mitigation", 3),
            _docs("Explainability Validation", 4),
            _docs("Stress / Adversarial Test Outputs", 5, required=False),
        ],
    },
    {
        "name": "Deployment & Operational Readiness",
        "description": "Pre-deployment checklists, rollback plans, deployment records, and governance approval.",
        "display_order": 4,
        "items": [
            {"name": "Deployment Readiness Checklist", "item_type": "checklist", "is_required": True,
             "display_order": 1,
             "config": {"defaultItems": [
                 "Infrastructure validated",
                 "Security review complete",
                 "Performance benchmarks met",
                 "Monitoring configured",
                 "Rollback tested",
             ]}},
            _docs("Rollback & Contingency Plan", 2),
            _docs("Deployment Record", 3),
            {"name": "Versioning History Log", "item_type": "textarea", "is_required": False, "display_order": 4,
             "config": {"placeholder": "Provide versioning history for this deployment"}},
            {"name": "Model Acceptance & Governance Approval", "item_type": "approval", "is_required": True,
             "display_order": 5, "config": {"requiredApprovers": 2}},
        ],
    },
    {
        "name": "Monitoring & Incident Management",
        "description": "Ongoing model monitoring, drift assessment, stability reports, and incident management.",
        "display_order": 5,
        "items": [
            _docs("Monitoring Plan", 1),
            _docs("Drift Assessment Reports", 2),
            _docs("Operational Stability Reports", 3, required=False),
            _docs("Incident Response SOP", 4),
            _docs("Model Incident Log", 5, required=False),
        ],
    },
    {
        "name": "Human-in-the-Loop Oversight",
        "description": "Human oversight procedures, manual review logs, escalation protocols, and ethics review.",
        "display_order": 6,
        "items": [
            _docs("HITL Procedure", 1),
            _docs("Manual Review Logs", 2, required=False),
            _docs("Override / Escalation Log", 3, required=False),
            {"name": "Ethics Review Committee Approvals", "item_type": "approval", "is_required": True,
             "display_order": 4, "config": {"requiredApprovers": 3}},
        ],
    },
]
