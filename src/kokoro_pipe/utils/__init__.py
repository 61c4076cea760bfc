"""
Utility Modules for kokoro-pipe.

    - audio.py: WAV encoding and sample collection
    - timeit.py: Performance measurement
"""
