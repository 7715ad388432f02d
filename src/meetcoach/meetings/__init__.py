"""Meeting evaluation module -- data models, repositories, and the pipeline.

Provides the data layer (Pydantic schemas, SQLAlchemy models,
MeetingRepository, OrganizationRepository) and the subpackages that turn a
finished Recall.ai recording into a persisted evaluation: bot (transcript
retrieval), evaluation (scoring and notes), pipeline (orchestration and
fan-out) and simulation (practice scenarios).
"""
