"""
Eligibility Service for the Eligibility Screening platform.
"""
