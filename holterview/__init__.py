"""HolterView: windowed waveform viewer for ambulatory ECG (Holter) studies."""

__version__ = "0.3.0"
