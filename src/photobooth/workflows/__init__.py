"""Camera-angle, 360 and video-transition generation workflows."""
