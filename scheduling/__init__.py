"""
Training-session booking engine: availability checks, the ordered rule
pipeline, the atomic booking transaction and occupancy counters.
"""
