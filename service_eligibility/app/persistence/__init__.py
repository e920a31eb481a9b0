"""
Reference data repositories for the Eligibility Service.
"""
