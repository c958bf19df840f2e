"""
# __init__.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
"""Pythia tools for jet clustering."""
from .pythia import (
    JetClusterSlowJetTool,
    phi_zero_2pi,
    _require_pythia,
)
