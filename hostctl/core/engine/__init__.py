"""
Engine — probing, gating, executing and confirming component actions.

Import from the submodules directly.
"""
