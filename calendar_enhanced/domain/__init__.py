"""Domain layer for Calendar Enhanced.

Category normalization, the mapping table and the appearance resolver live
here. It is intentionally framework-agnostic: nothing in this package
imports Flask, so the same rules back the render hooks, the DOM fallback
pass and the browser payload.
"""
