"""
Chat Rule Bot - Rule driven chat bot core
=========================================

A chat bot matching incoming chat messages and events against
user-authored rules and executing the configured action chains:
1. Rules with match criteria, cooldowns and permits
2. Pluggable actors executing the actions

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"
