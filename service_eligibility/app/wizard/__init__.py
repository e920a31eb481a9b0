"""
Wizard package.

Step definitions for the multi-step eligibility questionnaire, the engine
that routes to the next step, and the service that marks downstream steps
stale when an upstream answer changes.
"""
