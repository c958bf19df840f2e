"""
# __init__.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
"""Geometric-bias dijet analysis tools for heavy-ion events."""

# Re-export tool modules for convenient imports
from . import analysis
from . import pythia
