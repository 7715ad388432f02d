"""Evaluation pipeline -- orchestration, notifications, and fan-out.

Provides EvaluationPipeline (the per-session state machine), the
notification emitter, and the isolated fan-out emitters that run once an
evaluation is committed.
"""
