"""
# dijet.py is a part of the GBIAS package.
# Copyright (C) 2025 GBIAS authors (see AUTHORS for details).
# GBIAS is licensed under the GNU GPL v3 or later, see LICENSE for details.
# Please respect the MCnet Guidelines, see GUIDELINES for details.
"""
import json, os, math
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from orchestral.tools.base.tool import BaseTool
from orchestral.tools.base.field_utils import RuntimeField, StateField

from tqdm import tqdm
import sys

import config

from .table import EventLoopState, EventTableWriter, resolve_output_name, DEFAULT_OUTPUT_NAME

# Configure tqdm to prevent multiple line printing
TQDM_CONFIG = {
    'file': sys.stderr,
    'ncols': 80,
    'leave': True,
    'dynamic_ncols': False
}

# Selection defaults (GeV, radians), see config.py.
LEADING_JET_PT_MIN = config.leading_jet_pt_min
JET_PT_MIN = config.jet_pt_min
JET_ABS_ETA_MAX = config.jet_abs_eta_max
DELTA_PHI_TOLERANCE = config.delta_phi_tolerance

# Fixed column order of the output table.
ROW_COLUMNS = ("Polar", "JProdR", "Jet1_pT", "Jet2_pT", "JetAngle", "Jet1_Ang", "Aj", "Weight")

REJECT_TOO_FEW_JETS = "too_few_jets"
REJECT_LEADING_PT = "leading_pt"
REJECT_NO_BACK_TO_BACK = "no_back_to_back"
REJECT_REASONS = (REJECT_TOO_FEW_JETS, REJECT_LEADING_PT, REJECT_NO_BACK_TO_BACK)

# ====================================================================== #
# ======================== Selection primitives ======================== #
# ====================================================================== #

class HeavyIonGeometry(NamedTuple):
    """Collision geometry read from the event's heavy-ion record."""
    event_plane_angle: float
    eccentricity: float

    @classmethod
    def from_record(cls, record: Optional[Dict[str, Any]]) -> Optional["HeavyIonGeometry"]:
        """Build from a JSONL "heavy_ion" block, or None when the event has none."""
        if not record:
            return None
        return cls(float(record["event_plane_angle"]), float(record["eccentricity"]))


class Rejected(NamedTuple):
    """The event contributes no row."""
    reason: str
    accepted = False


class Accepted(NamedTuple):
    """The event passed all vetoes; row holds (column, value) pairs in ROW_COLUMNS order."""
    row: Tuple[Tuple[str, Optional[float]], ...]
    accepted = True

    def as_dict(self) -> Dict[str, Optional[float]]:
        return dict(self.row)


SelectionResult = Union[Rejected, Accepted]


def jets_by_pt(jets: Sequence[Dict[str, Any]], pt_min: float = JET_PT_MIN,
               abs_eta_max: float = JET_ABS_ETA_MAX) -> List[Dict[str, Any]]:
    """Keep jets with pT > pt_min and |eta| < abs_eta_max, hardest first."""
    kept = [j for j in jets if j["pT"] > pt_min and abs(j["eta"]) < abs_eta_max]
    kept.sort(key=lambda j: j["pT"], reverse=True)
    return kept


def event_weight(event: Dict[str, Any]) -> float:
    """First weight of the event, 1.0 if the event carries none."""
    weights = event.get("weights") or []
    return float(weights[0]) if len(weights) > 0 else 1.0


def select_dijet(
    jets: Sequence[Dict[str, Any]],
    hi: Optional[HeavyIonGeometry] = None,
    weight: float = 1.0,
    leading_pt_min: float = LEADING_JET_PT_MIN,
    delta_phi_tolerance: float = DELTA_PHI_TOLERANCE,
) -> SelectionResult:
    """
    Apply the dijet veto to one event and compute its table row.

    Parameters:
        jets: jets ordered by descending pT (not re-sorted here), each with "pT" and "phi"
        hi: heavy-ion geometry of the event, None if the event has no heavy-ion record
        weight: event weight
        leading_pt_min: minimum pT of the leading jet [GeV]
        delta_phi_tolerance: maximum distance of |phi1 - phi2| from pi

    Returns:
        Rejected(reason) or Accepted(row)

    The partner of the leading jet is the first jet, in the given order, whose
    azimuthal separation from it lies within delta_phi_tolerance of pi. The
    separation is the raw |phi1 - phi2| without wrapping into [0, pi].
    """
    if len(jets) < 2:
        return Rejected(REJECT_TOO_FEW_JETS)

    j1 = jets[0]
    if j1["pT"] < leading_pt_min:
        return Rejected(REJECT_LEADING_PT)

    j2 = None
    for j in jets:
        if abs(abs(j1["phi"] - j["phi"]) - math.pi) < delta_phi_tolerance:
            j2 = j
            break
    if j2 is None:
        return Rejected(REJECT_NO_BACK_TO_BACK)

    pt1 = float(j1["pT"])
    pt2 = float(j2["pT"])

    row = (
        ("Polar", hi.event_plane_angle if hi is not None else None),
        ("JProdR", hi.eccentricity if hi is not None else None),
        ("Jet1_pT", pt1),
        ("Jet2_pT", pt2),
        ("JetAngle", abs(j1["phi"] - j2["phi"]) * 180. / math.pi),
        ("Jet1_Ang", float(j1["phi"])),
        ("Aj", (pt1 - pt2) / (pt1 + pt2)),
        ("Weight", float(weight)),
    )
    return Accepted(row)

# ====================================================================== #
# ======================= Dijet selection tool ========================= #
# ====================================================================== #

class DijetSelectionTool(BaseTool):
    """
    Select back-to-back dijet events from clustered jets and write the event table.

    Input (runtime):
      - input_path: jets .jsonl file (from JetClusterSlowJetTool)
      - output_path: table to write; "e" or empty selects 'eventdata.dat'
      - leading_pt_min: leading jet pT threshold [GeV] (default 80)
      - jet_pt_min / jet_abs_eta_max: jet acceptance before the selection (default 20 GeV, 2.0)
      - delta_phi_tolerance: allowed distance of the dijet opening angle from pi (default pi/8)
      - float_format: printf-style format for table values (default '%g')
      - max_events: stop after this many events (default: all)

    Per event:
      1. Jets passing the acceptance are ordered by pT.
      2. The dijet veto is applied (at least two jets, leading jet above threshold,
         a partner within the tolerance of back-to-back).
      3. Accepted events append one row: Polar, JProdR, Jet1_pT, Jet2_pT, JetAngle,
         Jet1_Ang, Aj, Weight. Polar/JProdR are 'nan' for events without heavy-ion data.

    If the table cannot be opened a warning is printed and the events are still
    selected and counted; the summary then reports "table_written": false.
    A malformed event stops the run with an error; rows already written stay in
    the table, which is then partial, and no completion message is printed.

    Output (JSON):
      {
        "status": "ok",
        "n_events": <int>,
        "accepted": <int>,
        "rejected": {"too_few_jets": <int>, "leading_pt": <int>, "no_back_to_back": <int>},
        "columns": [...],
        "table_written": <bool>,
        "output_path": "<relative path>"
      }
    """
    # --------------------------- Runtime fields --------------------------- #
    input_path: str = RuntimeField(description="Path to jets .jsonl file")
    output_path: str = RuntimeField(default=DEFAULT_OUTPUT_NAME, description="Path of the output table ('e' selects eventdata.dat)")
    leading_pt_min: float = RuntimeField(default=LEADING_JET_PT_MIN, description="Leading jet pT threshold [GeV]")
    jet_pt_min: float = RuntimeField(default=JET_PT_MIN, description="Jet pT acceptance [GeV]")
    jet_abs_eta_max: float = RuntimeField(default=JET_ABS_ETA_MAX, description="Jet |eta| acceptance")
    delta_phi_tolerance: float = RuntimeField(default=DELTA_PHI_TOLERANCE, description="Allowed |dphi - pi| for the dijet partner [rad]")
    float_format: str = RuntimeField(default=config.float_format, description="printf-style format of table values")
    max_events: Optional[int] = RuntimeField(default=None, description="Maximum number of events to process")
    # ---------------------------------------------------------------------- #

    # ---------------------------- State fields ---------------------------- #
    base_directory: str = StateField(default=".", description="Base directory for safe paths")
    # ---------------------------------------------------------------------- #

    def _setup(self):
        """Setup base directory and validate it exists."""
        self.base_directory = os.path.abspath(self.base_directory)
        if not os.path.isdir(self.base_directory):
            raise ValueError(f"Base directory does not exist or is not a directory: {self.base_directory}")

    def _safe_path(self, rel: Optional[str]) -> Optional[str]:
        """Ensures that the path is within the allowed base directory."""
        if not rel:
            return None
        full = os.path.abspath(os.path.join(self.base_directory, rel))
        if full.startswith(self.base_directory + os.sep) or full == self.base_directory:
            return full
        return None

    def _run(self) -> str:
        """Run the dijet selection over all events and write the table."""
        try:
            self._setup()
        except Exception as e:
            return self.format_error(error="Path Error", reason=str(e))

        src = self._safe_path(self.input_path)
        dst = self._safe_path(resolve_output_name(self.output_path))

        if not src or not dst:
            return self.format_error(
                error="Access Denied",
                reason="input_path or output_path escapes base_directory",
                suggestion="Use relative paths inside base_directory"
            )

        if not os.path.exists(src):
            return self.format_error(
                error="File Not Found",
                reason=f"Input file not found: {self.input_path}",
                suggestion="Provide a jets .jsonl file from JetClusterSlowJetTool"
            )

        try:
            self.float_format % 1.0
        except (TypeError, ValueError) as e:
            return self.format_error(
                error="Invalid Parameter",
                reason=f"float_format '{self.float_format}' is not a valid numeric format: {e}",
                suggestion="Use a printf-style format such as '%g' or '%.6f'"
            )

        state = EventLoopState()
        rejected = {reason: 0 for reason in REJECT_REASONS}
        n_events = 0

        with open(src, "r", encoding="utf-8") as f:
            total_events = sum(1 for _ in f)
        if self.max_events is not None:
            total_events = min(total_events, int(self.max_events))

        complete = False
        writer = EventTableWriter(dst, float_format=self.float_format)
        writer.open()
        try:
            with open(src, "r", encoding="utf-8") as f:
                for idx, line in tqdm(enumerate(f), total=total_events, desc="Selecting dijets", unit="evt", **TQDM_CONFIG):
                    if self.max_events is not None and n_events >= int(self.max_events):
                        break
                    if not line.strip():
                        continue
                    try:
                        ev = json.loads(line)
                        jets = ev["data"]["jets"]
                    except (json.JSONDecodeError, KeyError, TypeError) as e:
                        return self.format_error(
                            error="Invalid Format",
                            reason=f"Line {idx + 1} is not a jets event: {e}",
                            suggestion="Expected jets JSONL structure: {\"data\": {\"jets\": [...]}}"
                        )
                    n_events += 1

                    try:
                        hi = HeavyIonGeometry.from_record(ev.get("heavy_ion"))
                        outcome = select_dijet(
                            jets_by_pt(jets, self.jet_pt_min, self.jet_abs_eta_max),
                            hi=hi,
                            weight=event_weight(ev),
                            leading_pt_min=self.leading_pt_min,
                            delta_phi_tolerance=self.delta_phi_tolerance,
                        )
                    except (KeyError, TypeError, ValueError) as e:
                        return self.format_error(
                            error="Processing Error",
                            reason=f"Event on line {idx + 1}: {e}",
                            suggestion="Jets need 'pT', 'eta' and 'phi'; heavy_ion needs 'event_plane_angle' and 'eccentricity'"
                        )

                    if not outcome.accepted:
                        rejected[outcome.reason] += 1
                        continue
                    writer.write_row(outcome.row, state)
            complete = True
        finally:
            table_written = writer.is_open
            writer.close(complete=complete)

        result = {
            "status": "ok",
            "n_events": n_events,
            "accepted": state.event_number,
            "rejected": rejected,
            "columns": list(ROW_COLUMNS),
            "table_written": table_written,
            "output_path": os.path.relpath(dst, self.base_directory),
        }
        return json.dumps(result, separators=(",", ":"), ensure_ascii=False)
