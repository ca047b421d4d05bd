"""
Sistema declarativo: planes YAML validados con Pydantic.
"""

from vpstool.declarative.loader import LoadedPlan, PlanLoadError, load_plan, parse_plan

__all__ = ["LoadedPlan", "PlanLoadError", "load_plan", "parse_plan"]
