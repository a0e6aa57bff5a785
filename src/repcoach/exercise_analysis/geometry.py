"""
geometry.py - Planar geometry rules that turn a Frame into raw scalar metrics.
"""
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .models import Frame

# MediaPipe BlazePose joint names, index == joint id
LANDMARK_NAMES = [
    "nose", "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer", "left_ear",
    "right_ear", "mouth_left", "mouth_right", "left_shoulder",
    "right_shoulder", "left_elbow", "right_elbow", "left_wrist",
    "right_wrist", "left_pinky", "right_pinky", "left_index",
    "right_index", "left_thumb", "right_thumb", "left_hip",
    "right_hip", "left_knee", "right_knee", "left_ankle",
    "right_ankle", "left_heel", "right_heel", "left_foot_index",
    "right_foot_index"
]
_NAME_TO_INDEX = {name: idx for idx, name in enumerate(LANDMARK_NAMES)}

DEFAULT_MIN_VISIBILITY = 0.5
_EPSILON = 1e-6

ANGLE = "angle"
TILT = "tilt"
DISTANCE = "distance"
RULE_KINDS = (ANGLE, TILT, DISTANCE)

# A joint reference is one joint id or a group of ids standing for their midpoint
JointRef = Union[int, Tuple[int, ...]]


def joint_index(ref: Union[int, str]) -> int:
    """Resolve a joint name ("left_elbow") or id (13) to a joint id."""
    if isinstance(ref, bool):
        raise ValueError(f"Invalid joint reference: {ref!r}")
    if isinstance(ref, int):
        if not 0 <= ref < len(LANDMARK_NAMES):
            raise ValueError(f"Joint id out of range: {ref}")
        return ref
    if isinstance(ref, str) and ref in _NAME_TO_INDEX:
        return _NAME_TO_INDEX[ref]
    raise ValueError(f"Unknown joint: {ref!r}")


def parse_joint_ref(ref) -> JointRef:
    """Parse a joint reference from configuration (name, id or list of them)."""
    if isinstance(ref, (list, tuple)):
        if not ref:
            raise ValueError("Empty joint group")
        group = tuple(joint_index(r) for r in ref)
        return group[0] if len(group) == 1 else group
    return joint_index(ref)


def flatten_joints(refs: Sequence[JointRef]) -> Tuple[int, ...]:
    """Flatten joint references into the tuple of ids they touch."""
    flat = []
    for ref in refs:
        if isinstance(ref, tuple):
            flat.extend(ref)
        else:
            flat.append(ref)
    return tuple(flat)


def resolve_point(frame: Frame, ref: JointRef, min_visibility: float = DEFAULT_MIN_VISIBILITY) -> Optional[np.ndarray]:
    """
    Planar position of a joint reference, or None when any joint involved is
    missing or below the visibility threshold.
    """
    ids = ref if isinstance(ref, tuple) else (ref,)
    points = []
    for idx in ids:
        if idx >= len(frame):
            return None
        lm = frame[idx]
        if lm.visibility < min_visibility:
            return None
        if not (math.isfinite(lm.x) and math.isfinite(lm.y)):
            return None
        points.append((lm.x, lm.y))
    return np.mean(np.array(points, dtype=float), axis=0)


# --- Math & Geometry Utilities ---
def included_angle(a: Sequence[float], b: Sequence[float], c: Sequence[float], signed: bool = False) -> Optional[float]:
    """
    Calculate the angle at vertex b between vectors b->a and b->c.

    Point ordering convention:
    - a: First point (e.g., shoulder for elbow angle)
    - b: Middle point (e.g., elbow for elbow angle)
    - c: Last point (e.g., wrist for elbow angle)

    Args:
        a: First point [x, y]
        b: Vertex point [x, y]
        c: Last point [x, y]
        signed: If True, returns the rotation from b->a to b->c in [-180, 180]
            (positive is clockwise on screen, image y grows downward),
            otherwise the included angle in [0, 180]

    Returns:
        Angle in degrees, or None when either vector has zero length
    """
    ba = np.array([a[0] - b[0], a[1] - b[1]], dtype=float)
    bc = np.array([c[0] - b[0], c[1] - b[1]], dtype=float)
    norm_ba = np.linalg.norm(ba)
    norm_bc = np.linalg.norm(bc)
    if norm_ba < _EPSILON or norm_bc < _EPSILON:
        return None
    if signed:
        cross = ba[0] * bc[1] - ba[1] * bc[0]
        dot = float(np.dot(ba, bc))
        return float(np.degrees(np.arctan2(cross, dot)))
    cosine_angle = np.clip(np.dot(ba, bc) / (norm_ba * norm_bc), -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def vertical_tilt(top: Sequence[float], bottom: Sequence[float]) -> Optional[float]:
    """
    Signed lean of the segment bottom->top against the image vertical.

    0 means top is straight above bottom, positive means top leans towards
    image-right, negative towards image-left. Range [-180, 180].
    """
    dx = top[0] - bottom[0]
    dy = bottom[1] - top[1]  # image y grows downward
    if math.hypot(dx, dy) < _EPSILON:
        return None
    return float(np.degrees(np.arctan2(dx, dy)))


def planar_distance(a: Sequence[float], b: Sequence[float], reference: Optional[float] = None) -> Optional[float]:
    """
    Euclidean distance between two points, optionally divided by a reference
    length (torso height, hip width) so thresholds are scale invariant.
    """
    dist = float(np.linalg.norm(np.array(a[:2], dtype=float) - np.array(b[:2], dtype=float)))
    if reference is None:
        return dist
    if reference < _EPSILON:
        return None
    return dist / reference


@dataclass(frozen=True)
class GeometryRule:
    """Joint references plus the formula that turns them into a scalar."""
    kind: str
    joints: Tuple[JointRef, ...]
    signed: bool = False
    normalize_by: Optional[Tuple[JointRef, JointRef]] = None

    @classmethod
    def from_dict(cls, data: dict) -> "GeometryRule":
        kind = data.get("kind", ANGLE)
        if kind not in RULE_KINDS:
            raise ValueError(f"Unknown geometry kind {kind!r}, expected one of {RULE_KINDS}")
        joints = tuple(parse_joint_ref(j) for j in data.get("joints", []))
        expected = 3 if kind == ANGLE else 2
        if len(joints) != expected:
            raise ValueError(f"{kind} rule needs {expected} joints, got {len(joints)}")
        normalize_by = data.get("normalize_by")
        if normalize_by is not None:
            if kind != DISTANCE:
                raise ValueError("normalize_by is only valid for distance rules")
            if len(normalize_by) != 2:
                raise ValueError("normalize_by needs exactly two joints")
            normalize_by = (parse_joint_ref(normalize_by[0]), parse_joint_ref(normalize_by[1]))
        return cls(kind=kind, joints=joints, signed=bool(data.get("signed", False)), normalize_by=normalize_by)

    @property
    def legal_range(self) -> Tuple[float, float]:
        if self.kind == DISTANCE:
            return 0.0, math.inf
        if self.kind == TILT or self.signed:
            return -180.0, 180.0
        return 0.0, 180.0

    @property
    def neutral(self) -> float:
        """Value reported before any valid sample exists."""
        if self.kind == ANGLE and not self.signed:
            return 180.0
        return 0.0

    @property
    def joint_ids(self) -> Tuple[int, ...]:
        return flatten_joints(self.joints)

    def evaluate(self, frame: Frame, min_visibility: float = DEFAULT_MIN_VISIBILITY) -> Optional[float]:
        """
        Compute the raw value for this frame.

        Returns:
            The scalar, or None when a joint is not visible enough or the
            geometry is degenerate
        """
        points = [resolve_point(frame, ref, min_visibility) for ref in self.joints]
        if any(p is None for p in points):
            return None
        if self.kind == ANGLE:
            return included_angle(points[0], points[1], points[2], self.signed)
        if self.kind == TILT:
            return vertical_tilt(points[0], points[1])
        reference = None
        if self.normalize_by is not None:
            ref_a = resolve_point(frame, self.normalize_by[0], min_visibility)
            ref_b = resolve_point(frame, self.normalize_by[1], min_visibility)
            if ref_a is None or ref_b is None:
                return None
            reference = planar_distance(ref_a, ref_b)
        return planar_distance(points[0], points[1], reference)
