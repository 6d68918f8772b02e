"""
GluciMiam meal analyzer:
- providers: one call surface over the vision backends
- extraction: JSON recovery from model text, truncation repair
- nutrition: local dictionary + OpenFoodFacts reference
- cache: perceptual-hash reuse of previous analyses
- corrections: per-user personalization from past edits
- pipeline: two-pass identify / quantify orchestrator
"""
