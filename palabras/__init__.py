"""
palabras - vocabulary study scheduler and response grading engine.

Packages:
- palabras.mastery: study state, grading, aggregates and storage
- palabras.session_builders: rotation-based session selection
- palabras.study_service: request-level API (study list, check response, stats)
"""

__version__ = "0.1.0"
