"""
profile.py - ExerciseProfile schema, parsing and load-time validation.

A profile is the only thing that differs between exercises: which metrics to
track, how to classify them, the phase graph, safety rules and messages. Every
defect is collected and reported at once so authors can fix a profile in one
pass; nothing here is checked again at frame-processing time.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .geometry import DEFAULT_MIN_VISIBILITY, GeometryRule
from .smoothing import EMA, MOVING_AVERAGE, SMOOTHING_METHODS
from .zones import ZoneBand, validate_bands

logger = logging.getLogger(__name__)

FREEZE = "freeze"
WITHHOLD_REPS = "withhold_reps"
SAFETY_POLICIES = (FREEZE, WITHHOLD_REPS)

SIDE_SELECTORS = ("min", "max", "max_deviation", "most_visible", "left", "right")

DEFAULTS = {
    "min_visibility": DEFAULT_MIN_VISIBILITY,
    "smoothing": {"method": MOVING_AVERAGE, "window": 5, "alpha": 0.5},
    "debounce_ms": 1000,
    "speech_silence_ms": 3000,
    "safety_policy": FREEZE,
}

DEFAULT_MESSAGES = {
    "idle": {"message": "Keep going", "kind": "info", "speak": False},
    "insufficient_data": {"message": "Step into view so your whole body is visible", "kind": "info"},
    "low_confidence": {"message": "Tracking is unstable, adjust your position", "kind": "warning", "speak": False},
    "safety_cleared": {"message": "Good, position corrected", "kind": "success"},
    "rep": {"message": "{reps}", "kind": "success"},
    "too_fast": {"message": "Too fast, control the movement", "kind": "warning"},
    "rep_withheld": {"message": "Rep not counted, fix your form first", "kind": "warning"},
}

_KINDS = ("info", "success", "warning", "danger")


class ProfileValidationError(ValueError):
    """Raised when an exercise profile is malformed."""

    def __init__(self, profile: str, errors: List[str]):
        self.profile = profile
        self.errors = list(errors)
        details = "\n  - ".join(self.errors)
        super().__init__(f"Invalid exercise profile '{profile}':\n  - {details}")


@dataclass(frozen=True)
class SmoothingSpec:
    method: str = MOVING_AVERAGE
    window: int = 5
    alpha: float = 0.5


@dataclass(frozen=True)
class MetricSpec:
    """A named metric: geometry rule(s), side selection, smoothing and zones."""
    name: str
    rules: Dict[str, GeometryRule]  # "center" or "left"/"right"
    side_selector: Optional[str]
    bands: Tuple[ZoneBand, ...]
    valid_zones: FrozenSet[str]
    neutral: float
    min_visibility: float
    smoothing: SmoothingSpec

    @property
    def bilateral(self) -> bool:
        return "left" in self.rules and "right" in self.rules

    @property
    def zone_names(self) -> Tuple[str, ...]:
        return tuple(b.name for b in self.bands)

    @property
    def legal_range(self) -> Tuple[float, float]:
        return next(iter(self.rules.values())).legal_range


@dataclass(frozen=True)
class Clause:
    """``metric`` zone is (or, when negated, is not) one of ``zones``."""
    metric: str
    zones: FrozenSet[str]
    negate: bool = False

    def holds(self, zones: Dict[str, str]) -> bool:
        inside = zones.get(self.metric) in self.zones
        return not inside if self.negate else inside


@dataclass(frozen=True)
class Condition:
    """Conjunction of clauses; an empty condition is always true."""
    clauses: Tuple[Clause, ...] = ()

    def holds(self, zones: Dict[str, str]) -> bool:
        return all(clause.holds(zones) for clause in self.clauses)

    def __len__(self) -> int:
        return len(self.clauses)


@dataclass(frozen=True)
class MessageTemplate:
    message: str
    kind: str = "info"
    speak: bool = True
    when: Condition = field(default_factory=Condition)


@dataclass(frozen=True)
class Transition:
    """Directed edge of the phase graph."""
    source: str
    target: str
    condition: Condition
    hold_ms: float = 0.0
    rep_completing: bool = False
    message: Optional[MessageTemplate] = None
    early_break_message: Optional[MessageTemplate] = None

    @property
    def is_self_loop(self) -> bool:
        return self.source == self.target


@dataclass(frozen=True)
class SafetyRule:
    """Violated while ``metric`` sits in one of ``zones`` (optionally only in ``phases``)."""
    name: str
    metric: str
    zones: FrozenSet[str]
    message: str
    phases: Optional[FrozenSet[str]] = None

    def violated(self, zones: Dict[str, str], phase: str) -> bool:
        if self.phases is not None and phase not in self.phases:
            return False
        return zones.get(self.metric) in self.zones


@dataclass(frozen=True)
class SymmetryRule:
    """Violated when both sides of a bilateral metric differ by more than ``max_difference``."""
    metric: str
    max_difference: float
    message: str
    name: str = "symmetry"

    def violated(self, side_values: Dict[str, Optional[float]]) -> bool:
        left, right = side_values.get("left"), side_values.get("right")
        if left is None or right is None:
            return False
        return abs(left - right) > self.max_difference


@dataclass(frozen=True)
class ExerciseProfile:
    """Immutable configuration bundle that drives a Session."""
    name: str
    display_name: str
    metrics: Tuple[MetricSpec, ...]
    phases: Tuple[str, ...]
    initial_phase: str
    transitions: Tuple[Transition, ...]
    safety_rules: Tuple[SafetyRule, ...]
    symmetry: Optional[SymmetryRule]
    safety_policy: str
    debounce_ms: float
    speech_silence_ms: float
    messages: Dict[str, MessageTemplate]
    phase_guidance: Dict[str, Tuple[MessageTemplate, ...]]

    def metric(self, name: str) -> MetricSpec:
        for spec in self.metrics:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def outgoing(self, phase: str) -> List[Transition]:
        """Outgoing edges of ``phase`` in declared order."""
        return [t for t in self.transitions if t.source == phase]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExerciseProfile":
        """
        Parse and validate a profile document.

        Raises:
            ProfileValidationError: listing every defect found
        """
        return _ProfileParser(data).parse()


class _ProfileParser:
    """Collects every defect of a profile document before failing."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data if isinstance(data, dict) else {}
        self.name = str(self.data.get("name", "<unnamed>"))
        self.errors: List[str] = []
        if not isinstance(data, dict):
            self.errors.append("profile document must be a JSON object")

    def parse(self) -> ExerciseProfile:
        data = self.data
        if "name" not in data:
            self.errors.append("missing 'name'")
        min_visibility = self._number(data.get("min_visibility", DEFAULTS["min_visibility"]), "min_visibility", 0.0, 1.0)
        smoothing = self._smoothing(data.get("smoothing", {}), DEFAULTS["smoothing"], "smoothing")
        debounce_ms = self._number(data.get("debounce_ms", DEFAULTS["debounce_ms"]), "debounce_ms", 0.0)
        silence_ms = self._number(data.get("speech_silence_ms", DEFAULTS["speech_silence_ms"]), "speech_silence_ms", 0.0)
        policy = data.get("safety_policy", DEFAULTS["safety_policy"])
        if policy not in SAFETY_POLICIES:
            self.errors.append(f"safety_policy must be one of {SAFETY_POLICIES}, got {policy!r}")

        metrics = []
        for _, raw in self._objects(data.get("metrics", []), "metrics"):
            spec = self._metric(raw, min_visibility, smoothing)
            if spec is not None:
                metrics.append(spec)
        if not data.get("metrics"):
            self.errors.append("at least one metric is required")
        metric_names = [m.name for m in metrics]
        for dup in sorted({n for n in metric_names if metric_names.count(n) > 1}):
            self.errors.append(f"duplicate metric '{dup}'")
        zones_by_metric = {m.name: set(m.zone_names) for m in metrics}

        raw_phases = [
            {"name": raw} if isinstance(raw, str) else raw
            for raw in self._list(data.get("phases", []), "phases")
        ]
        raw_phases = [raw for _, raw in self._objects(raw_phases, "phases")]
        phases, initial = self._phases(raw_phases)
        phase_set = set(phases)

        transitions = []
        for idx, raw in self._objects(data.get("transitions", []), "transitions"):
            edge = self._transition(raw, idx, phase_set, zones_by_metric)
            if edge is not None:
                transitions.append(edge)
        if not data.get("transitions"):
            self.errors.append("at least one transition is required")

        safety_rules = [
            rule for rule in (
                self._safety_rule(raw, idx, phase_set, zones_by_metric)
                for idx, raw in self._objects(data.get("safety_rules", []), "safety_rules")
            ) if rule is not None
        ]
        symmetry = self._symmetry(data.get("symmetry"), metrics)

        messages = dict((key, self._template(value, f"messages.{key}")) for key, value in DEFAULT_MESSAGES.items())
        raw_messages = data.get("messages", {})
        if not isinstance(raw_messages, dict):
            self.errors.append(f"messages must be an object, got {type(raw_messages).__name__}")
            raw_messages = {}
        for key, value in raw_messages.items():
            if key not in DEFAULT_MESSAGES:
                self.errors.append(f"unknown message key '{key}', expected one of {sorted(DEFAULT_MESSAGES)}")
                continue
            messages[key] = self._template(value, f"messages.{key}", default_kind=DEFAULT_MESSAGES[key]["kind"])

        guidance = {}
        for raw in raw_phases:
            if raw.get("name") in phase_set:
                label = f"phase '{raw['name']}' guidance"
                templates = [
                    self._template(t, label, zones_by_metric=zones_by_metric)
                    for t in self._list(raw.get("guidance", []), label)
                ]
                # most specific templates are tried first
                templates.sort(key=lambda t: -len(t.when))
                guidance[raw["name"]] = tuple(templates)

        if initial is not None and transitions:
            self._check_reachable_rep(initial, transitions)

        if self.errors:
            raise ProfileValidationError(self.name, self.errors)

        profile = ExerciseProfile(
            name=self.name,
            display_name=str(data.get("display_name", self.name)),
            metrics=tuple(metrics),
            phases=tuple(phases),
            initial_phase=initial,
            transitions=tuple(transitions),
            safety_rules=tuple(safety_rules),
            symmetry=symmetry,
            safety_policy=policy,
            debounce_ms=debounce_ms,
            speech_silence_ms=silence_ms,
            messages=messages,
            phase_guidance=guidance,
        )
        logger.debug("Parsed profile %s: %d metrics, %d phases, %d transitions",
                     profile.name, len(profile.metrics), len(profile.phases), len(profile.transitions))
        return profile

    # --- field helpers ---

    def _list(self, value, label: str) -> list:
        if not isinstance(value, list):
            self.errors.append(f"{label} must be a list, got {type(value).__name__}")
            return []
        return value

    def _objects(self, value, label: str) -> List[Tuple[int, Dict[str, Any]]]:
        """(index, entry) for every JSON object in a list; other entries are reported."""
        entries = []
        for idx, item in enumerate(self._list(value, label)):
            if isinstance(item, dict):
                entries.append((idx, item))
            else:
                self.errors.append(f"{label}[{idx}] must be an object, got {item!r}")
        return entries

    def _names(self, value, label: str) -> FrozenSet[str]:
        """A list of zone or phase names."""
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            self.errors.append(f"{label} must be a list of names, got {value!r}")
            return frozenset()
        return frozenset(value)

    def _number(self, value, label: str, low: Optional[float] = None, high: Optional[float] = None) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            self.errors.append(f"{label} must be a number, got {value!r}")
            return 0.0
        if (low is not None and number < low) or (high is not None and number > high):
            self.errors.append(f"{label} must be within [{low}, {high}], got {number}")
        return number

    def _smoothing(self, raw: Dict[str, Any], base, label: str) -> SmoothingSpec:
        if isinstance(base, SmoothingSpec):
            base = {"method": base.method, "window": base.window, "alpha": base.alpha}
        if raw is not None and not isinstance(raw, dict):
            self.errors.append(f"{label} must be an object, got {raw!r}")
            raw = {}
        merged = dict(base, **(raw or {}))
        method = merged["method"]
        if method not in SMOOTHING_METHODS:
            self.errors.append(f"{label}.method must be one of {SMOOTHING_METHODS}, got {method!r}")
        window = merged["window"]
        if not isinstance(window, int) or isinstance(window, bool) or window < 1:
            self.errors.append(f"{label}.window must be an integer >= 1, got {window!r}")
            window = 1
        alpha = self._number(merged["alpha"], f"{label}.alpha", 0.0, 1.0)
        if method == EMA and alpha <= 0.0:
            self.errors.append(f"{label}.alpha must be > 0 for ema smoothing")
        return SmoothingSpec(method=method, window=window, alpha=alpha)

    def _metric(self, raw: Dict[str, Any], min_visibility: float, smoothing: SmoothingSpec) -> Optional[MetricSpec]:
        name = raw.get("name")
        if not name or not isinstance(name, str):
            self.errors.append(f"metric without a name: {raw!r}")
            return None
        label = f"metric '{name}'"
        rules = {}
        try:
            if "left" in raw or "right" in raw:
                if not ("left" in raw and "right" in raw):
                    self.errors.append(f"{label}: bilateral metrics need both 'left' and 'right'")
                    return None
                for side in ("left", "right"):
                    if not isinstance(raw[side], dict):
                        self.errors.append(f"{label}: '{side}' must be an object, got {raw[side]!r}")
                        return None
                    rules[side] = GeometryRule.from_dict(dict({"kind": raw.get("kind", "angle"),
                                                               "signed": raw.get("signed", False)}, **raw[side]))
            else:
                rules["center"] = GeometryRule.from_dict(raw)
        except (TypeError, ValueError) as exc:
            self.errors.append(f"{label}: {exc}")
            return None

        selector = raw.get("side")
        if len(rules) == 2:
            selector = selector or "min"
            if selector not in SIDE_SELECTORS:
                self.errors.append(f"{label}: side must be one of {SIDE_SELECTORS}, got {selector!r}")
        elif selector is not None:
            self.errors.append(f"{label}: 'side' only applies to bilateral metrics")
            selector = None

        rule = next(iter(rules.values()))
        bands = []
        for band in self._list(raw.get("zones", []), f"{label}.zones"):
            if not isinstance(band, dict):
                self.errors.append(f"{label}: bad zone band {band!r}")
                continue
            try:
                bands.append(ZoneBand.from_dict(band))
            except (KeyError, TypeError, ValueError) as exc:
                self.errors.append(f"{label}: bad zone band {band!r} ({exc})")
        self.errors.extend(validate_bands(bands, rule.legal_range, name))
        bands.sort(key=lambda b: b.lower)
        zone_names = {b.name for b in bands}

        valid_zones = frozenset(zone_names)
        if "valid_zones" in raw:
            valid_zones = self._names(raw["valid_zones"], f"{label}.valid_zones")
        unknown = sorted(valid_zones - zone_names)
        if unknown:
            self.errors.append(f"{label}: valid_zones reference unknown zones {unknown}")

        neutral = self._number(raw.get("neutral", rule.neutral), f"{label}.neutral")
        visibility = self._number(raw.get("min_visibility", min_visibility), f"{label}.min_visibility", 0.0, 1.0)
        return MetricSpec(
            name=name,
            rules=rules,
            side_selector=selector,
            bands=tuple(bands),
            valid_zones=valid_zones,
            neutral=neutral,
            min_visibility=visibility,
            smoothing=self._smoothing(raw.get("smoothing", {}), smoothing, f"{label}.smoothing"),
        )

    def _phases(self, raw_phases) -> Tuple[List[str], Optional[str]]:
        names, initial = [], []
        for raw in raw_phases:
            name = raw.get("name")
            if not name or not isinstance(name, str):
                self.errors.append(f"phase without a name: {raw!r}")
                continue
            if name in names:
                self.errors.append(f"duplicate phase '{name}'")
                continue
            names.append(name)
            if raw.get("initial"):
                initial.append(name)
        if not names:
            self.errors.append("at least one phase is required")
        if len(initial) != 1:
            self.errors.append(f"exactly one phase must be initial, found {len(initial)}")
            return names, None
        return names, initial[0]

    def _condition(self, raw, label: str, zones_by_metric: Dict[str, set]) -> Condition:
        clauses = []
        for item in self._list(raw or [], f"{label}.when"):
            if not isinstance(item, dict):
                self.errors.append(f"{label}: clause must be an object, got {item!r}")
                continue
            metric = item.get("metric")
            if not isinstance(metric, str) or metric not in zones_by_metric:
                self.errors.append(f"{label}: unknown metric '{metric}'")
                continue
            if "zone" in item:
                zones, negate = self._names([item["zone"]], f"{label}.zone"), False
            elif "in" in item:
                zones, negate = self._names(item["in"], f"{label}.in"), False
            elif "not_in" in item:
                zones, negate = self._names(item["not_in"], f"{label}.not_in"), True
            elif "not_zone" in item:
                zones, negate = self._names([item["not_zone"]], f"{label}.not_zone"), True
            else:
                self.errors.append(f"{label}: clause on '{metric}' needs 'zone', 'in', 'not_zone' or 'not_in'")
                continue
            unknown = sorted(zones - zones_by_metric[metric])
            if unknown:
                self.errors.append(f"{label}: metric '{metric}' has no zones {unknown}")
            clauses.append(Clause(metric=metric, zones=zones, negate=negate))
        return Condition(tuple(clauses))

    def _template(self, raw, label: str, default_kind: str = "info", zones_by_metric=None) -> MessageTemplate:
        if isinstance(raw, str):
            raw = {"message": raw}
        if not isinstance(raw, dict) or not isinstance(raw.get("message"), str):
            self.errors.append(f"{label}: message template needs a 'message' string")
            return MessageTemplate(message="")
        kind = raw.get("kind", default_kind)
        if kind not in _KINDS:
            self.errors.append(f"{label}: kind must be one of {_KINDS}, got {kind!r}")
        when = Condition()
        if raw.get("when"):
            if zones_by_metric is None:
                self.errors.append(f"{label}: 'when' is only allowed in phase guidance")
            else:
                when = self._condition(raw["when"], label, zones_by_metric)
        return MessageTemplate(message=raw["message"], kind=kind, speak=bool(raw.get("speak", True)), when=when)

    def _transition(self, raw, idx: int, phases: set, zones_by_metric) -> Optional[Transition]:
        source, target = raw.get("from"), raw.get("to")
        label = f"transition #{idx} ({source} -> {target})"
        ok = True
        for end in (source, target):
            if not isinstance(end, str) or end not in phases:
                self.errors.append(f"{label}: references undeclared phase '{end}'")
                ok = False
        hold_ms = self._number(raw.get("hold_ms", 0), f"{label}.hold_ms", 0.0)
        rep = bool(raw.get("rep", False))
        if rep and source == target:
            self.errors.append(f"{label}: self-loops cannot complete a rep")
        condition = self._condition(raw.get("when", []), label, zones_by_metric)
        message = self._template(raw["message"], f"{label}.message") if "message" in raw else None
        early = None
        if "early_break_message" in raw:
            early = self._template(raw["early_break_message"], f"{label}.early_break_message", default_kind="warning")
            if hold_ms <= 0:
                self.errors.append(f"{label}: early_break_message needs a hold_ms")
        if not ok:
            return None
        return Transition(source=source, target=target, condition=condition, hold_ms=hold_ms,
                          rep_completing=rep, message=message, early_break_message=early)

    def _safety_rule(self, raw, idx: int, phases: set, zones_by_metric) -> Optional[SafetyRule]:
        name = raw.get("name", f"safety_{idx}")
        label = f"safety rule '{name}'"
        metric = raw.get("metric")
        if not isinstance(metric, str) or metric not in zones_by_metric:
            self.errors.append(f"{label}: unknown metric '{metric}'")
            return None
        zones = self._names(raw.get("zones", []), f"{label}.zones")
        if not zones:
            self.errors.append(f"{label}: needs at least one danger zone")
        unknown = sorted(zones - zones_by_metric[metric])
        if unknown:
            self.errors.append(f"{label}: metric '{metric}' has no zones {unknown}")
        rule_phases = raw.get("phases")
        if rule_phases is not None:
            rule_phases = self._names(rule_phases, f"{label}.phases")
            missing = sorted(rule_phases - phases)
            if missing:
                self.errors.append(f"{label}: references undeclared phases {missing}")
        message = raw.get("message")
        if not isinstance(message, str):
            self.errors.append(f"{label}: needs a 'message' string")
            message = ""
        return SafetyRule(name=name, metric=metric, zones=zones, message=message, phases=rule_phases)

    def _symmetry(self, raw, metrics: List[MetricSpec]) -> Optional[SymmetryRule]:
        if not raw:
            return None
        if not isinstance(raw, dict):
            self.errors.append(f"symmetry must be an object, got {raw!r}")
            return None
        metric = raw.get("metric")
        spec = next((m for m in metrics if m.name == metric), None)
        if spec is None:
            self.errors.append(f"symmetry: unknown metric '{metric}'")
            return None
        if not spec.bilateral:
            self.errors.append(f"symmetry: metric '{metric}' is not bilateral")
        limit = self._number(raw.get("max_difference"), "symmetry.max_difference", 0.0)
        message = raw.get("message", "Keep both sides even")
        return SymmetryRule(metric=metric, max_difference=limit, message=message, name=raw.get("name", "symmetry"))

    def _check_reachable_rep(self, initial: str, transitions: List[Transition]) -> None:
        seen = {initial}
        queue = deque([initial])
        while queue:
            phase = queue.popleft()
            for edge in transitions:
                if edge.source != phase:
                    continue
                if edge.rep_completing:
                    return
                if edge.target not in seen:
                    seen.add(edge.target)
                    queue.append(edge.target)
        self.errors.append(f"no rep-completing transition is reachable from initial phase '{initial}'")
