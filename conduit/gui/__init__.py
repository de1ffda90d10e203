"""
GUI module for Conduit.

The only window is the recording indicator, run as its own process with
``python -m conduit.gui.indicator`` so that PyQt6 is never loaded into the
main pipeline.
"""
