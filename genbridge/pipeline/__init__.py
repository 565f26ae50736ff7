"""
Generation orchestration, debug capture and result output.
"""
