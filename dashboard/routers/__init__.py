"""
Dashboard API Routers.
"""
from . import risk_assessments

__all__ = ["risk_assessments"]
