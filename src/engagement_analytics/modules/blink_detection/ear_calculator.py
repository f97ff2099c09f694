"""
Eye Aspect Ratio (EAR) and Gaze Calculator

Works on the 468-point face mesh returned by the face landmark provider.
The EAR used here is the simplified vertical/horizontal ratio of each eye
(one vertical pair, one horizontal pair), averaged over both eyes.
"""

from typing import Dict, Optional, Sequence, Tuple

from ...types import Landmark


FACE_MESH_POINTS = 468

# Face mesh indices
LEFT_EYE = {'top': 159, 'bottom': 145, 'left': 133, 'right': 33}
RIGHT_EYE = {'top': 386, 'bottom': 374, 'left': 362, 'right': 263}
NOSE_TIP = 1
LEFT_EYE_OUTER = 33
RIGHT_EYE_OUTER = 263

# Returned when the mesh is incomplete; typical open-eye value
NEUTRAL_EAR = 0.3


def calculate_single_eye_aspect_ratio(landmarks: Sequence[Landmark], eye: Dict[str, int]) -> float:
    """
    Calculate EAR for one eye.

    Args:
        landmarks: Face mesh landmarks
        eye: Index mapping with top/bottom/left/right keys

    Returns:
        Vertical opening divided by horizontal width
    """
    vertical_dist = abs(landmarks[eye['top']].y - landmarks[eye['bottom']].y)
    horizontal_dist = abs(landmarks[eye['right']].x - landmarks[eye['left']].x)
    # Prevent division by zero
    return vertical_dist / (horizontal_dist + 0.001)


def calculate_eye_aspect_ratio(landmarks: Optional[Sequence[Landmark]]) -> float:
    """
    Calculate the average Eye Aspect Ratio of both eyes.

    Args:
        landmarks: 468 face mesh landmarks

    Returns:
        Average EAR (typically 0.2-0.4 for open eyes, <0.2 for closed);
        ``NEUTRAL_EAR`` when the mesh is incomplete
    """
    if not landmarks or len(landmarks) < FACE_MESH_POINTS:
        return NEUTRAL_EAR

    left_ear = calculate_single_eye_aspect_ratio(landmarks, LEFT_EYE)
    right_ear = calculate_single_eye_aspect_ratio(landmarks, RIGHT_EYE)

    return (left_ear + right_ear) / 2.0


def is_blink(ear: float, threshold: float = 0.2) -> bool:
    """A frame is a blink frame when the averaged EAR is below ``threshold``."""
    return ear < threshold


def _eye_center(landmarks: Sequence[Landmark]) -> Tuple[float, float]:
    left_eye = landmarks[LEFT_EYE_OUTER]
    right_eye = landmarks[RIGHT_EYE_OUTER]
    return (left_eye.x + right_eye.x) / 2.0, (left_eye.y + right_eye.y) / 2.0


def estimate_gaze_direction(landmarks: Optional[Sequence[Landmark]]) -> Optional[Dict[str, float]]:
    """
    Estimate gaze direction from the nose tip offset relative to the eye center.

    Args:
        landmarks: Face mesh landmarks

    Returns:
        Dictionary with 'horizontal' and 'vertical' offsets, or None when
        the mesh is missing
    """
    if not landmarks or len(landmarks) <= RIGHT_EYE_OUTER:
        return None

    nose = landmarks[NOSE_TIP]
    center_x, center_y = _eye_center(landmarks)

    return {
        'horizontal': (nose.x - center_x) * 2.0,
        'vertical': (nose.y - center_y) * 2.0
    }


def is_looking_at_screen(gaze: Optional[Dict[str, float]], threshold: float = 0.3) -> bool:
    """Both gaze offsets must be inside ``threshold``."""
    if gaze is None:
        return False
    return abs(gaze['horizontal']) < threshold and abs(gaze['vertical']) < threshold

