"""
# conversions.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
import json, os
from typing import Any, Dict, Optional

from orchestral.tools.base.tool import BaseTool
from orchestral.tools.base.field_utils import RuntimeField, StateField

from tqdm import tqdm
import sys

SCHEMA_VERSION = "evtjsonl-1.0"

# Configure tqdm to prevent multiple line printing
TQDM_CONFIG = {
    'file': sys.stderr,
    'ncols': 80,
    'leave': True,
    'dynamic_ncols': False
}

# Scalar fields of the HepMC heavy-ion record copied into the JSONL "heavy_ion" block.
HEAVY_ION_FIELDS = (
    "event_plane_angle",
    "eccentricity",
    "impact_parameter",
    "Ncoll_hard",
    "Npart_proj",
    "Npart_targ",
    "Ncoll",
    "sigma_inel_NN",
    "centrality",
)

# ====================================================================== #
# =========================== Helper functions ========================= #
# ====================================================================== #

def _require_pyhepmc() -> Any:
    """Ensure pyhepmc is available, or raise ImportError."""
    try:
        import pyhepmc
        return pyhepmc
    except Exception as e:
        raise ImportError("pyhepmc is not available, install to use this tool (e.g. `pip install pyhepmc`).") from e


def _heavy_ion_to_dict(hi: Any) -> Optional[Dict[str, float]]:
    """Copy the scalar fields of a GenHeavyIon record, None if the event has none."""
    if hi is None:
        return None
    rec = {}
    for key in HEAVY_ION_FIELDS:
        if hasattr(hi, key):
            value = getattr(hi, key)
            if isinstance(value, (int, float)):
                rec[key] = value
    return rec


def _hepmc_event_to_row(event: Any, ev_id: int, finals_only: bool) -> Dict[str, Any]:
    """Convert a pyhepmc GenEvent into an evtjsonl-1.0 row with weights and heavy-ion data."""
    particles_out = []
    for p in event.particles:
        status = int(p.status)
        if finals_only and status != 1:
            continue
        mom = p.momentum
        rec = {
            "i": len(particles_out),
            "id": int(p.pid),
            "px": float(mom.px),
            "py": float(mom.py),
            "pz": float(mom.pz),
            "E":  float(mom.e),
            "m":  float(p.generated_mass),
        }
        if not finals_only:
            rec["status"] = status
        particles_out.append(rec)

    return {
        "schema": SCHEMA_VERSION,
        "event_id": ev_id,
        "event_number": int(event.event_number),
        "finals_only": bool(finals_only),
        "weights": [float(w) for w in event.weights],
        "heavy_ion": _heavy_ion_to_dict(event.heavy_ion),
        "data": {
            "n_particles": len(particles_out),
            "particles": particles_out,
        },
    }

# ====================================================================== #
# ======================= HepMC \to JSONL tool ========================= #
# ====================================================================== #

class HepMCToJSONLTool(BaseTool):
    """
    Convert a HepMC ascii file (HepMC2 or HepMC3, format detected by pyhepmc)
    into the JSONL (evtjsonl-1.0) schema.

    Input (runtime):
      - hepmc_path: path to the HepMC file, must live under base_directory
      - jsonl_path: output path for events.jsonl (relative to base_directory)
      - finals_only: keep only status==1 particles (default True)
      - max_events: stop after this many events (default: all)

    Output:
      JSON string:
      {
        "status": "ok",
        "events_jsonl": "<relative path>",
        "n_events": <int>,
        "n_heavy_ion": <int>     # events that carried a heavy-ion record
      }

    Schema per line:
      {
        "schema": "evtjsonl-1.0",
        "event_id": <int>,
        "event_number": <int>,
        "finals_only": <bool>,
        "weights": [<float>, ...],
        "heavy_ion": {"event_plane_angle": <float>, "eccentricity": <float>, ...} | null,
        "data": {
          "n_particles": <int>,
          "particles": [{"i", "id", "px", "py", "pz", "E", "m"}, ...]
        }
      }
    """
    # --------------------------- Runtime fields --------------------------- #

    hepmc_path: str = RuntimeField(description="Path to HepMC ascii file")
    jsonl_path: str = RuntimeField(description="Relative path to write events.jsonl")
    finals_only: bool = RuntimeField(default=True, description="Keep only status==1 particles")
    max_events: Optional[int] = RuntimeField(default=None, description="Maximum number of events to convert")

    # ---------------------------------------------------------------------- #

    # ---------------------------- State fields ---------------------------- #

    base_directory: str = StateField(default=".", description="Base sandbox root")

    # ---------------------------------------------------------------------- #

    def _setup(self):
        """Set up the tool by resolving paths."""
        self.base_directory = os.path.abspath(self.base_directory)
        if not os.path.isdir(self.base_directory):
            raise ValueError(f"Base directory does not exist or is not a directory: {self.base_directory}")

    def _safe_path(self, rel_or_abs: str) -> Optional[str]:
        """Ensures that the path is within the allowed base directory."""
        if not rel_or_abs:
            return None
        full = os.path.abspath(os.path.join(self.base_directory, rel_or_abs))
        if full.startswith(self.base_directory + os.sep) or full == self.base_directory:
            return full
        return None

    def _run(self) -> str:
        """Run the tool."""
        try:
            self._setup()
        except Exception as e:
            return self.format_error(error="Path Error", reason=str(e))

        src_abs = self._safe_path(self.hepmc_path)
        dst_abs = self._safe_path(self.jsonl_path)

        if src_abs is None:
            return self.format_error(
                error="Access Denied",
                reason="hepmc_path is outside allowed base_directory",
                context=self.hepmc_path,
                suggestion="Copy the HepMC file under base_directory or adjust base_directory"
            )
        if dst_abs is None:
            return self.format_error(
                error="Access Denied",
                reason="jsonl_path escapes base_directory",
                context=self.jsonl_path,
                suggestion="Use a relative output path inside base_directory"
            )

        if not os.path.exists(src_abs):
            return self.format_error(
                error="File Not Found",
                reason="HepMC file not found",
                context=self.hepmc_path
            )

        try:
            pyhepmc = _require_pyhepmc()
        except Exception as e:
            return self.format_error(
                error="Dependency Missing",
                reason=str(e),
                suggestion="pip install pyhepmc"
            )

        try:
            os.makedirs(os.path.dirname(dst_abs), exist_ok=True)
        except Exception as e:
            return self.format_error(
                error="Write Error",
                reason=str(e),
                context=f"path={dst_abs}",
                suggestion="Verify disk space and permissions"
            )

        # Stream convert -> JSONL.
        n_written = 0
        n_heavy_ion = 0
        try:
            with pyhepmc.open(src_abs) as infp, open(dst_abs, "w", encoding="utf-8") as outfp:
                for ev_id, event in enumerate(tqdm(infp, desc="Converting HepMC to JSONL", unit="evt", **TQDM_CONFIG)):
                    if self.max_events is not None and ev_id >= int(self.max_events):
                        break
                    row = _hepmc_event_to_row(event, ev_id, self.finals_only)
                    if row["heavy_ion"] is not None:
                        n_heavy_ion += 1
                    outfp.write(json.dumps(row, separators=(",", ":"), ensure_ascii=False) + "\n")
                    n_written += 1
        except Exception as e:
            return self.format_error(
                error="Read Error",
                reason=f"Failed to convert HepMC with pyhepmc: {e}",
                context=f"path={self.hepmc_path}",
                suggestion="Check file integrity and HepMC format"
            )

        result = {
            "status": "ok",
            "events_jsonl": os.path.relpath(dst_abs, self.base_directory),
            "n_events": int(n_written),
            "n_heavy_ion": int(n_heavy_ion),
        }
        return json.dumps(result, separators=(",", ":"), ensure_ascii=False)
