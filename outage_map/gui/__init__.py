"""
PyQt5 front end: marker items, render layers, transition animator and
the outage map widget.
"""
