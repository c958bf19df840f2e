"""
# config.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
# Output table name. Passing "e" on the command line also selects it.
output_filename = "eventdata.dat"

# printf-style format of the table values ("%g" prints 6 significant digits).
float_format = "%g"

# Particle acceptance and anti-kT jet clustering.
particle_abs_eta_max = 3.0
jet_radius = 0.4

# Jet acceptance before the dijet selection [GeV].
jet_pt_min = 20.0
jet_abs_eta_max = 2.0

# Dijet selection: leading jet pT [GeV] and back-to-back tolerance [rad] (pi/8).
leading_jet_pt_min = 80.0
delta_phi_tolerance = 0.39269908169872414
