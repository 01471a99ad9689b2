"""
Dubbing Sync - temporal alignment of dubbed speech tracks.

Re-times a synthesized, translated speech track so that it follows the
speech/silence structure and total duration of the original recording:
- Building a speech/silence timeline from silence intervals
- Distributing translated text across speech blocks
- Planning bounded tempo chains to fit each block
- Assembling blocks and silence padding into one duration-matched track
"""

__version__ = "0.1.0"
