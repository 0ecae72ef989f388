"""
power/ — Slave CPU power sequencing

Public API:
    from supervisors.power import PowerSequencerTask
"""

from supervisors.power.sequencer import PowerSequencerTask

__all__ = ["PowerSequencerTask"]
