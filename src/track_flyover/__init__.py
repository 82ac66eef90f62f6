"""GPS track flyover: route classification, speed planning and camera playback."""

__version__ = "0.1.0"
