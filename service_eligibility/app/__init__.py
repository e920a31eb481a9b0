"""
Eligibility Service package for the Eligibility Screening platform.

This package screens applicants for Medicaid programs. It provides:

- app.main: API surface for eligibility evaluation, question visibility,
  wizard navigation and cache administration.
- app.expressions: Condition grammar shared by every evaluator.
- app.fpl: Federal Poverty Level threshold calculation.
- app.rules: Program rules, the rule engine and confidence scoring.
- app.conditions: Question visibility and catalog validation.
- app.wizard: Step navigation and downstream invalidation.
- app.cache: In-memory rule and FPL caches.
- app.persistence: Repository interfaces and file-seeded implementations.
- app.evaluation: Cache-aside orchestration around the rule engine.
"""
