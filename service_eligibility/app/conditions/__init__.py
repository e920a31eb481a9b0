"""
Conditional question package.

Decides which questionnaire questions apply to an applicant and validates
question sets before they are published: every visibility rule must exist,
reference only known questions, and stay free of dependency cycles.
"""
