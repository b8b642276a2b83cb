"""
Utility modules for tts-relay.

    - timeit.py: Block timing and receive deadlines
"""
