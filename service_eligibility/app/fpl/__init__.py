"""
Federal Poverty Level package.

Holds the FPL record model and the threshold calculator. The calculator
prefers a state-specific row, falls back to the national baseline, and
never substitutes zero for missing data.
"""
