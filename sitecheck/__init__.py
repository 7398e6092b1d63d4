"""Resilient page checks for a live marketing site."""

from .locators import LocatorResolver
from .reporting import ReportGenerator
from .runner import SuiteRunner
from .scenario import Scenario, ScenarioDriver

__all__ = ["LocatorResolver", "ReportGenerator", "Scenario", "ScenarioDriver", "SuiteRunner"]
