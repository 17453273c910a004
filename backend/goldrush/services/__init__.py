"""Game coordination services: rounds, clues, scans, sabotage, broadcast.

HTTP routes and socket handlers import from here, keeping transport
concerns separated from the round and sabotage rules.
"""
