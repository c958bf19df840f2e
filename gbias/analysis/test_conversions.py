#!/usr/bin/env python3
"""
# test_conversions.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
"""
Data Conversion Tools Test Suite

Tests cover:
- Heavy-ion record extraction
- HepMC event to evtjsonl-1.0 row (weights, heavy-ion block, finals_only)
- HepMC file to JSONL conversion through HepMCToJSONLTool
- Path traversal prevention (security)
"""

# Standard library imports
import json
import os
import shutil
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

# Third-party imports
import pyhepmc

# Path setup
SCRIPT_PATH = Path(__file__).resolve()
ANALYSIS_DIR = SCRIPT_PATH.parent                             # .../gbias/gbias/analysis
PACKAGE_DIR = ANALYSIS_DIR.parent                             # .../gbias/gbias
REPO_ROOT = PACKAGE_DIR.parent                                # .../gbias

# Add repository root to path for local imports (config, gbias, etc.)
sys.path.insert(0, str(REPO_ROOT))

from gbias.analysis.conversions import (
    HepMCToJSONLTool,
    _heavy_ion_to_dict,
    _hepmc_event_to_row,
    SCHEMA_VERSION,
)

# Global flag for keeping test files (set by main)
_keep_files = False


def _make_event(event_number, weight=None, plane_angle=None, eccentricity=None):
    """Build a small GenEvent: a beam proton decaying into two back-to-back pions."""
    ev = pyhepmc.GenEvent(pyhepmc.Units.GEV, pyhepmc.Units.MM)
    ev.event_number = event_number

    beam = pyhepmc.GenParticle(pyhepmc.FourVector(0.0, 0.0, 100.0, 100.0), 2212, 4)
    pion1 = pyhepmc.GenParticle(pyhepmc.FourVector(50.0, 0.0, 0.0, 50.2), 211, 1)
    pion2 = pyhepmc.GenParticle(pyhepmc.FourVector(-50.0, 0.0, 0.0, 50.2), -211, 1)
    vertex = pyhepmc.GenVertex()
    vertex.add_particle_in(beam)
    vertex.add_particle_out(pion1)
    vertex.add_particle_out(pion2)
    ev.add_vertex(vertex)

    ev.weights = [weight] if weight is not None else []
    if plane_angle is not None:
        hi = pyhepmc.GenHeavyIon()
        hi.event_plane_angle = plane_angle
        hi.eccentricity = eccentricity
        ev.heavy_ion = hi
    return ev


# ============================================================================
# Test Functions
# ============================================================================

def test_heavy_ion_to_dict():
    """Test copying the scalar fields of a heavy-ion record."""
    print(">> Testing heavy-ion record extraction...\n")

    assert _heavy_ion_to_dict(None) is None
    print("[✓] Test 1 passed: no record gives None")

    record = SimpleNamespace(event_plane_angle=0.4, eccentricity=0.2, Ncoll=17, centrality=0.1)
    rec = _heavy_ion_to_dict(record)
    assert rec == {"event_plane_angle": 0.4, "eccentricity": 0.2, "Ncoll": 17, "centrality": 0.1}, rec
    print("[✓] Test 2 passed: scalar fields copied, missing fields skipped")

    print("\nAll heavy-ion extraction tests passed! [✓]\n")


def test_event_to_row():
    """Test conversion of a single GenEvent."""
    print(">> Testing GenEvent to JSONL row...\n")

    ev = _make_event(42, weight=2.5, plane_angle=0.3, eccentricity=0.15)
    row = _hepmc_event_to_row(ev, 0, finals_only=True)

    assert row["schema"] == SCHEMA_VERSION
    assert row["event_number"] == 42
    assert row["weights"] == [2.5]
    assert abs(row["heavy_ion"]["event_plane_angle"] - 0.3) < 1e-12
    assert abs(row["heavy_ion"]["eccentricity"] - 0.15) < 1e-12
    assert row["data"]["n_particles"] == 2
    assert sorted(p["id"] for p in row["data"]["particles"]) == [-211, 211]
    assert [p["i"] for p in row["data"]["particles"]] == [0, 1]
    print("[✓] Test 1 passed: weights, heavy-ion block and final-state particles")

    row = _hepmc_event_to_row(_make_event(1), 3, finals_only=False)
    assert row["event_id"] == 3
    assert row["heavy_ion"] is None
    assert row["weights"] == []
    assert row["data"]["n_particles"] == 3
    assert all("status" in p for p in row["data"]["particles"])
    print("[✓] Test 2 passed: event without heavy-ion record, full particle list")

    print("\nAll event conversion tests passed! [✓]\n")


def test_hepmc_to_jsonl_tool():
    """Test HepMCToJSONLTool on a written HepMC3 file."""
    print(">> Testing HepMC to JSONL conversion...\n")

    test_dir = tempfile.mkdtemp()
    try:
        hepmc_file = os.path.join(test_dir, "events.hepmc")
        with pyhepmc.open(hepmc_file, "w") as f:
            f.write(_make_event(0, weight=1.5, plane_angle=0.8, eccentricity=0.4))
            f.write(_make_event(1, weight=0.5))
            f.write(_make_event(2, weight=2.0, plane_angle=1.6, eccentricity=0.1))

        tool = HepMCToJSONLTool(
            base_directory=test_dir,
            hepmc_path="events.hepmc",
            jsonl_path="data/events.jsonl",
        )
        result = json.loads(tool._run())

        assert result["status"] == "ok", result
        assert result["n_events"] == 3
        assert result["n_heavy_ion"] == 2
        assert result["events_jsonl"] == os.path.join("data", "events.jsonl")
        print("[✓] Test 1 passed: three events converted, two with heavy-ion data")

        with open(os.path.join(test_dir, "data", "events.jsonl"), "r") as f:
            rows = [json.loads(line) for line in f]
        assert [r["event_number"] for r in rows] == [0, 1, 2]
        assert rows[0]["weights"][0] == 1.5
        assert abs(rows[0]["heavy_ion"]["event_plane_angle"] - 0.8) < 1e-9
        assert rows[1]["heavy_ion"] is None
        assert all(r["data"]["n_particles"] == 2 for r in rows)
        print("[✓] Test 2 passed: per-event rows match the input")

        result = json.loads(HepMCToJSONLTool(
            base_directory=test_dir,
            hepmc_path="events.hepmc",
            jsonl_path="data/first.jsonl",
            max_events=1,
        )._run())
        assert result["status"] == "ok", result
        assert result["n_events"] == 1
        print("[✓] Test 3 passed: max_events limits the conversion")
    finally:
        if not _keep_files:
            shutil.rmtree(test_dir, ignore_errors=True)

    print("\nAll HepMC conversion tests passed! [✓]\n")


def test_path_traversal_prevention():
    """Test that path traversal attempts are rejected (critical security test)."""
    print(">> Testing path traversal prevention (security)...\n")

    test_dir = tempfile.mkdtemp()
    try:
        result = HepMCToJSONLTool(
            base_directory=test_dir,
            hepmc_path="../../etc/passwd",
            jsonl_path="events.jsonl",
        )._run()
        assert "error" in result.lower() or "denied" in result.lower()
        print("[✓] Test 1 passed: hepmc_path traversal rejected")

        result = HepMCToJSONLTool(
            base_directory=test_dir,
            hepmc_path="events.hepmc",
            jsonl_path="../../tmp/events.jsonl",
        )._run()
        assert "error" in result.lower() or "denied" in result.lower()
        print("[✓] Test 2 passed: jsonl_path traversal rejected")

        result = HepMCToJSONLTool(
            base_directory=test_dir,
            hepmc_path="missing.hepmc",
            jsonl_path="events.jsonl",
        )._run()
        assert "File Not Found" in result
        print("[✓] Test 3 passed: missing input reported")
    finally:
        shutil.rmtree(test_dir, ignore_errors=True)

    print("\nAll path traversal prevention tests passed! [✓]\n")


# ============================================================================
# Main Test Runner
# ============================================================================

def main():
    """Run all tests."""
    import argparse

    global _keep_files

    parser = argparse.ArgumentParser(description="Test suite for data conversion tools")
    parser.add_argument("--keep-files", action="store_true",
                        help="Keep test-generated files after tests complete")
    args = parser.parse_args()

    _keep_files = args.keep_files

    try:
        test_heavy_ion_to_dict()
        test_event_to_row()
        test_hepmc_to_jsonl_tool()
        test_path_traversal_prevention()

        print()
        print("=" * 70)
        print("Test suite completed successfully! [✓]")
        print("=" * 70)

    except AssertionError as e:
        print("\n" + "=" * 70)
        print("Test suite completed with failures! [✗]")
        print("=" * 70)
        print(f"Assertion error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

    except Exception as e:
        print("\n" + "=" * 70)
        print("Test suite completed with failures! [✗]")
        print("=" * 70)
        print(f"Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
    sys.exit(0)
