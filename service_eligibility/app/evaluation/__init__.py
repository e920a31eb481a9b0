"""
Eligibility evaluation orchestration.
"""
