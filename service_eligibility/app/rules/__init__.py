"""
Rules engine package.

Defines Medicaid programs, versioned eligibility rules and the engine that
evaluates them for one applicant. Each program yields a verdict, a 0-100
confidence score and a plain-language explanation; the aggregate result is
ranked by confidence.

Modules of interest:
- models: Programs, rules, applicant input and result models.
- engine: Active-version selection, evaluation and aggregation.
- scoring: Confidence scoring and the score/status/label mapping.
- assets: State asset limits for aged and disabled pathways.
- pathways: Pathway identification from applicant characteristics.
- explanation: Explanation text helpers.
"""
