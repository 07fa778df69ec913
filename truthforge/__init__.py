"""
TruthForge — validation gate for autonomous coding agents.

Records what an agent claims, observes what is actually true, and issues
a pass token only when the two agree.
"""

__version__ = "0.1.0"
