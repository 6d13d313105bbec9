"""State/store layer.

This package is the single source of truth for the decoded vehicle state.
Decoded replies arrive as :class:`~pyobdble.state.events.FieldUpdate`
events and are fanned out to observers as immutable snapshots.
"""
