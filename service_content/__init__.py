"""
Content service package: request orchestration for external content sources.
"""
