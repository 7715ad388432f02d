"""Practice-scenario generation -- role-play configs built from evaluated calls.

Provides SimulationGenerator (LLM-backed generation and repair) and the
Local/Http clients the fan-out uses to reach it.
"""
