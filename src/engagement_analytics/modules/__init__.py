"""
Signal analysis modules: attention windows, blink and gaze, posture.
"""
