"""
PosturePomo Posture Service - Geometry

Pure 2D helpers shared by the feature extractor and the stretch labelers.
"""

import numpy as np

from .landmarks import Landmark


# Upward direction in image coordinates (y grows downward)
VERTICAL_UP = np.array([0.0, -1.0])


def distance(a: Landmark, b: Landmark) -> float:
    """Euclidean distance between two landmarks in the image plane."""
    return float(np.linalg.norm(b.to_numpy() - a.to_numpy()))


def angle_from_vertical(origin: Landmark, tip: Landmark) -> float:
    """
    Signed angle between the origin->tip vector and the upward vertical.

    The magnitude comes from the dot product, the sign from the cross product:
    a negative cross product is reported as a positive angle.

    Args:
        origin: Segment start (e.g. hip)
        tip: Segment end (e.g. shoulder)

    Returns:
        Angle in degrees (-180..180); 0.0 for a zero-length segment
    """
    vector = tip.to_numpy() - origin.to_numpy()
    length = np.linalg.norm(vector)
    if length == 0:
        return 0.0

    cosine = np.dot(vector, VERTICAL_UP) / length
    angle = float(np.degrees(np.arccos(np.clip(cosine, -1.0, 1.0))))

    cross = vector[0] * VERTICAL_UP[1] - vector[1] * VERTICAL_UP[0]
    return angle if cross < 0 else -angle


def segment_angle(a: Landmark, b: Landmark) -> float:
    """Angle between segment a-b and the horizontal, in degrees (0..90)."""
    dx = abs(b.x - a.x)
    dy = abs(b.y - a.y)
    return float(np.degrees(np.arctan2(dy, dx)))
