"""Media storage module.

Stores uploads under a flat storage root, derives waveform ``.dat`` files
for audio through the external ``audiowaveform`` tool, and serves/deletes
stored files for the primary app.

Services:
    - MediaStorageService: ingest, locate, delete and reset stored files.
    - WaveformGenerator: bounded-time invocation of the waveform tool.
"""
