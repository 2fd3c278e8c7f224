"""
Run-time machinery: planning, expressions, error policy and results.
"""
