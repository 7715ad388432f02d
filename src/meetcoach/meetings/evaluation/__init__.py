"""Call evaluation -- SPIN scoring, structured notes, and score normalization.

Provides EvaluationScorer (required branch), NotesExtractor (optional
branch) and the scoring helpers that turn scorer output into the canonical
0-100 score and performance tier.
"""
