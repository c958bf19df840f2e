"""
# pythia.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""

import json, os, math
from pathlib import Path
from typing import Any, Dict, Optional, List, Iterator, Tuple

from orchestral.tools.base.tool import BaseTool
from orchestral.tools.base.field_utils import RuntimeField, StateField

from tqdm import tqdm
import sys

import config

SCHEMA_VERSION = "evtjsonl-1.0"

# Configure tqdm to prevent multiple line printing
TQDM_CONFIG = {
    'file': sys.stderr,
    'ncols': 80,
    'leave': True,
    'dynamic_ncols': False,
    'mininterval': 0.1,  # Default update interval
    'ascii': False       # Use Unicode characters for better appearance
}

# SlowJet power for anti-kT.
ANTIKT_POWER = -1

TWO_PI = 2. * math.pi

# ====================================================================== #
# =========================== Helper functions ========================= #
# ====================================================================== #

def _require_pythia() -> Any:
    """Ensure pythia8mc is available, or raise ImportError."""
    try:
        import pythia8mc as pythia8
        return pythia8
    except Exception as e:
        raise ImportError("pythia8mc is not available, install to use this tool (e.g. `pip install pythia8mc`).") from e


def phi_zero_2pi(phi: float) -> float:
    """Map an azimuthal angle from atan2's (-pi, pi] into [0, 2pi)."""
    phi = math.fmod(phi, TWO_PI)
    if phi < 0.:
        phi += TWO_PI
    # -1e-17 + 2pi rounds to 2pi
    if phi >= TWO_PI:
        phi = 0.
    return phi


class FdSilence:
    def __init__(self, *fds):
        """Context manager to silence specified file descriptors (e.g., STDOUT, STDERR)."""
        self.fds = fds
        self.saved = []

    def __enter__(self):
        # open null once
        self.null = os.open(os.devnull, os.O_WRONLY)
        for fd in self.fds:
            # dup original fd so we can restore later
            saved_fd = os.dup(fd)
            self.saved.append((fd, saved_fd))
            # redirect fd -> /dev/null
            os.dup2(self.null, fd)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for (fd, saved_fd) in self.saved:
            os.dup2(saved_fd, fd)
            os.close(saved_fd)
        self.saved = []
        os.close(self.null)

STDIN, STDOUT, STDERR = 0, 1, 2

# ..................................................................... #
# ..................... SlowJet clustering tool ....................... #
# ..................................................................... #

class JetClusterSlowJetTool(BaseTool):
    """
    Cluster anti-kT jets with Pythia8.SlowJet, carrying event weights and
    heavy-ion geometry through to the jets output.

    Input:
      - jsonl_path: events in evtjsonl-1.0 (e.g. from HepMCToJSONLTool)
      - output_path: jets .jsonl to write, one line per input event
      - max_events: stop after this many events (default: all)

    Params:
      - R: radius parameter (default 0.4)
      - ptmin: minimum jet pT [GeV] (default 20)
      - etamax: |eta| max for constituents (default 3.0)
      - mass_option: 1 = E-scheme (typical), see Pythia8 doc

    Output line schema:
      {
        "schema": "evtjsonl-1.0",
        "algorithm": "antikt", "R": 0.4, "ptmin": 20.0, "etamax": 3.0, "mass_option": 1,
        "event_index": <int>,
        "weights": [<float>, ...],
        "heavy_ion": {...} | null,
        "data": {"n_jets": <int>, "jets": [{px, py, pz, E, m, pT, eta, y, phi, n_const}]}
      }
    Jets are ordered by decreasing pT, as SlowJet returns them. phi is given in [0, 2pi).
    """

    # Tool arguments
    jsonl_path: Optional[str] = RuntimeField(default=None, description="Path to events.jsonl")
    output_path: Optional[str] = RuntimeField(default=None, description="Path to save the jets .jsonl")
    max_events: Optional[int] = RuntimeField(default=None, description="Maximum number of events to cluster")

    # SlowJet arguments
    R: float         = RuntimeField(default=config.jet_radius, description="Jet radius")
    ptmin: float     = RuntimeField(default=config.jet_pt_min, description="Min jet pT [GeV]")
    etamax: float    = RuntimeField(default=config.particle_abs_eta_max, description="Max |eta| for constituents")
    mass_option: int = RuntimeField(default=1, description="Recombination scheme (SlowJet massOption)")

    # Sandbox root
    base_directory: str = StateField(default=".", description="Base directory for safe path resolution")

    def _get_pythia8(self):
        """Get or create a shared Pythia8 module reference."""
        if not hasattr(self, "_pythia8_module"):
            self._pythia8_module = _require_pythia()
        return self._pythia8_module

    def _setup(self):
        """Setup base directory and validate it exists."""
        self.base_directory = os.path.abspath(self.base_directory)
        if not os.path.isdir(self.base_directory):
            raise ValueError(f"Base directory does not exist or is not a directory: {self.base_directory}")

    def _safe_path(self, rel: Optional[str]) -> Optional[str]:
        """
        Resolve rel against base_directory.
        Return absolute path if and only if it is inside base_directory.
        Otherwise return None.
        """
        if not rel:
            return None
        # If user passed an absolute path, interpret it relative to base_directory anyway
        # so that "/tmp/x" cannot escape.
        rel_norm = rel.lstrip(os.sep)
        full = os.path.abspath(os.path.join(self.base_directory, rel_norm))
        if not full.startswith(self.base_directory + os.sep) and full != self.base_directory:
            return None
        return full

    def _iter_jsonl_events(self, src: str) -> Iterator[Tuple[int, Dict[str, Any]]]:
        """Yield (index, event) for every line of an evtjsonl-1.0 file."""
        with open(src, "r", encoding="utf-8") as f:
            for idx, line in enumerate(f):
                if not line.strip():
                    continue
                ev = json.loads(line)
                # Ensure ordering by original index if provided.
                ev["data"]["particles"] = sorted(ev["data"]["particles"], key=lambda p: p.get("i", 0))
                yield idx, ev

    def _build_pythia_event(self, pythia8: Any, particles: List[Dict[str, float]]) -> Any:
        """
        Build a minimal Pythia8.Event with final-state particles only.
        Uses Event.append signature available in Pythia8; if unavailable, error out.
        """
        if not hasattr(pythia8, "Event"):
            raise RuntimeError("pythia8mc binding does not expose Event class.")

        evt = pythia8.Event()
        try:
            evt.reset()
        except Exception:
            # Some bindings use clear().
            if hasattr(evt, "clear"):
                evt.clear()

        for p in particles:
            if not hasattr(evt, "append"):
                raise RuntimeError("pythia8mc Event.append not available in this binding.")
            # Event.append(id, status, col, acol, px, py, pz, E, m).
            evt.append(int(p.get("id", 0)), 1, 0, 0, p["px"], p["py"], p["pz"], p["E"], float(p.get("m", 0.0)))
        return evt

    def _cluster(self, particles: List[Dict[str, float]], pythia8: Any) -> Dict[str, Any]:
        """Cluster one event's particles and return the jets block."""
        evt = self._build_pythia_event(pythia8, particles)

        # Based on the way events are built here, select must be 1 (all final-state particles).
        SELECT = 1
        try:
            sj = pythia8.SlowJet(ANTIKT_POWER, float(self.R), float(self.ptmin), float(self.etamax), SELECT, int(self.mass_option))
        except Exception:
            sj = pythia8.SlowJet(ANTIKT_POWER, float(self.R), float(self.ptmin), float(self.etamax))

        # Quietly (supress FastJet banner) cluster with SlowJet.
        with FdSilence(STDOUT, STDERR):
            sj.analyze(evt)

        n_jets = int(sj.sizeJet())
        jets = []
        for j in range(n_jets):
            p = sj.p(j)
            jets.append({
                "index": j,
                "px":  float(p.px()),
                "py":  float(p.py()),
                "pz":  float(p.pz()),
                "E":   float(p.e()),
                "m":   float(sj.m(j)),
                "pT":  float(sj.pT(j)),
                "eta": float(p.eta()),
                "y":   float(sj.y(j)),
                "phi": phi_zero_2pi(float(sj.phi(j))),
                "n_const": int(sj.multiplicity(j)),
            })

        return {"n_jets": n_jets, "jets": jets}

    def _jets_row(self, idx: int, ev: Dict[str, Any], jets_block: Dict[str, Any]) -> Dict[str, Any]:
        """Assemble one output line, propagating event-level metadata."""
        return {
            "schema": SCHEMA_VERSION,
            "algorithm": "antikt",
            "R": float(self.R),
            "ptmin": float(self.ptmin),
            "etamax": float(self.etamax),
            "mass_option": int(self.mass_option),
            "event_index": idx,
            "weights": list(ev.get("weights") or []),
            "heavy_ion": ev.get("heavy_ion"),
            "data": jets_block,
        }

    def _run(self) -> str:
        """Run jet clustering and return JSON summary."""
        try:
            self._setup()
        except Exception as e:
            return self.format_error(error="Path Error", reason=str(e))

        if not self.jsonl_path:
            return self.format_error(error="Invalid Parameters", reason="No input source provided")
        if not self.output_path:
            return self.format_error(
                error="Missing Parameter",
                reason="output_path is required",
                suggestion="Provide output_path to save clustered jets"
            )

        src = self._safe_path(self.jsonl_path)
        if src is None:
            return self.format_error(error="Path Error", reason="jsonl_path is outside allowed base_directory")
        outpath = self._safe_path(self.output_path)
        if outpath is None:
            return self.format_error(error="Path Error", reason="output_path is outside allowed base_directory")
        if not Path(src).exists():
            return self.format_error(error="File Not Found", reason=f"{src} not found")

        try:
            pythia8 = self._get_pythia8()
        except Exception as e:
            return self.format_error(
                error="Dependency Missing",
                reason=str(e),
                suggestion="Install pythia8mc in the current runtime"
            )

        n_events = 0
        n_empty = 0
        try:
            with open(src, "r", encoding="utf-8") as f:
                total_events = sum(1 for _ in f)
            if self.max_events is not None:
                total_events = min(total_events, int(self.max_events))

            os.makedirs(os.path.dirname(outpath), exist_ok=True)
            with open(outpath, "w", encoding="utf-8") as outfile:
                for idx, ev in tqdm(self._iter_jsonl_events(src), total=total_events, desc="Clustering events", **TQDM_CONFIG):
                    if self.max_events is not None and n_events >= int(self.max_events):
                        break
                    particles = ev["data"]["particles"]
                    if particles:
                        jets_block = self._cluster(particles, pythia8)
                    else:
                        # Empty events still get a line so weights and geometry stay aligned.
                        n_empty += 1
                        jets_block = {"n_jets": 0, "jets": []}
                    outfile.write(json.dumps(self._jets_row(idx, ev, jets_block), separators=(",", ":"), ensure_ascii=False) + "\n")
                    n_events += 1
        except Exception as e:
            return self.format_error(error="Clustering Error", reason=str(e))

        return json.dumps(
            {
                "status": "ok",
                "n_events": n_events,
                "n_empty": n_empty,
                "output_file": os.path.relpath(outpath, self.base_directory)
            },
            separators=(",", ":"),
            ensure_ascii=False
        )
