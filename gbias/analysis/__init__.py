"""
# __init__.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
"""Event conversion, dijet selection and table output."""
from .conversions import HepMCToJSONLTool
from .dijet import (
    DijetSelectionTool,
    HeavyIonGeometry,
    Accepted,
    Rejected,
    ROW_COLUMNS,
    select_dijet,
    jets_by_pt,
    event_weight,
)
from .table import EventTableWriter, EventLoopState, resolve_output_name
