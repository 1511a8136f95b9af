"""Stagebox backend.

Media storage and token-gated delivery for band projects.

Applications:
    - stagebox.main:app        primary API (auth, projects, signed links, gateway)
    - stagebox.media.main:app  media service (storage root, waveform derivation)
"""
