"""
Shared helpers.

    - text.py: Normalization and line identity
    - audio.py: Duration probing and silence rendering
    - timeit.py: Timing context manager
"""
