"""
# pipeline.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
"""
Command-line driver for the geometric-bias dijet analysis.

Chains the tools of this package:
    HepMC file -> events.jsonl -> jets.jsonl -> event table

Usage:
    gbias-investigate -i events.hepmc -o eventdata.dat
    gbias-investigate --events data/events.jsonl -o e     # 'e' selects eventdata.dat
    gbias-investigate --jets data/jets.jsonl
"""

import argparse
import json
import os
import sys
from typing import Any, Dict, Optional

import config
from gbias.analysis.conversions import HepMCToJSONLTool
from gbias.analysis.dijet import DijetSelectionTool
from gbias.analysis.table import resolve_output_name
from gbias.pythia import JetClusterSlowJetTool


def _parse_tool_output(raw: str) -> Dict[str, Any]:
    """Decode a tool result; non-JSON output is treated as an error message."""
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {"status": "error", "error": str(raw)}


def run_pipeline(
    base_directory: str = ".",
    hepmc_path: Optional[str] = None,
    events_path: Optional[str] = None,
    jets_path: Optional[str] = None,
    output_path: str = config.output_filename,
    work_dir: str = "gbias_work",
    max_events: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Run the analysis from whichever stage the input belongs to.

    Exactly one of hepmc_path, events_path (evtjsonl-1.0 particles) or
    jets_path (clustered jets) must be given. Paths are relative to
    base_directory. max_events limits every stage that runs, so it applies
    whichever input is given. Returns the summary of the last stage that ran,
    with the summaries of all stages under "stages".
    """
    given = [p for p in (hepmc_path, events_path, jets_path) if p]
    if len(given) != 1:
        return {"status": "error", "error": "Invalid Parameters",
                "reason": "Provide exactly one of hepmc_path, events_path, jets_path"}

    stages = {}

    if hepmc_path:
        events_path = os.path.join(work_dir, "events.jsonl")
        print(f">> Converting {hepmc_path} ...")
        stages["convert"] = _parse_tool_output(HepMCToJSONLTool(
            base_directory=base_directory,
            hepmc_path=hepmc_path,
            jsonl_path=events_path,
            max_events=max_events,
        )._run())
        if stages["convert"].get("status") != "ok":
            return {**stages["convert"], "stages": stages}

    if events_path:
        jets_path = os.path.join(work_dir, "jets.jsonl")
        print(f">> Clustering jets (anti-kT R={config.jet_radius}) ...")
        stages["cluster"] = _parse_tool_output(JetClusterSlowJetTool(
            base_directory=base_directory,
            jsonl_path=events_path,
            output_path=jets_path,
            max_events=max_events,
        )._run())
        if stages["cluster"].get("status") != "ok":
            return {**stages["cluster"], "stages": stages}

    print(">> Selecting dijets ...")
    stages["select"] = _parse_tool_output(DijetSelectionTool(
        base_directory=base_directory,
        input_path=jets_path,
        output_path=resolve_output_name(output_path, config.output_filename),
        max_events=max_events,
    )._run())
    return {**stages["select"], "stages": stages}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Geometric-bias dijet analysis of heavy-ion events")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("-i", "--hepmc", help="HepMC2/HepMC3 ascii input file")
    source.add_argument("--events", help="Events .jsonl (evtjsonl-1.0) input file")
    source.add_argument("--jets", help="Clustered jets .jsonl input file")
    parser.add_argument(
        "-o", "--output",
        default=config.output_filename,
        help=f"Output table name ('e' selects {config.output_filename})"
    )
    parser.add_argument("-d", "--base-directory", default=".", help="Directory all paths are relative to")
    parser.add_argument("--work-dir", default="gbias_work", help="Directory for intermediate .jsonl files")
    parser.add_argument("-n", "--max-events", type=int, default=None, help="Maximum number of events to process, whichever input is given")
    args = parser.parse_args(argv)

    result = run_pipeline(
        base_directory=args.base_directory,
        hepmc_path=args.hepmc,
        events_path=args.events,
        jets_path=args.jets,
        output_path=args.output,
        work_dir=args.work_dir,
        max_events=args.max_events,
    )

    if result.get("status") != "ok":
        print(f"[✗] {result.get('error', 'Error')}: {result.get('reason', '')}")
        return 1

    print(f"[✓] {result['accepted']} of {result['n_events']} events accepted")
    if result["table_written"]:
        print(f"    Table: {result['output_path']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
